"""Version information for the airlisten package."""

__version_info__ = (0, 1, 0)
__version__ = ".".join("%d" % part for part in __version_info__)
