from pytest import raises
from trio import fail_after, open_nursery, sleep

from airlisten import ListenerBase, ListenerState


class DummyListener(ListenerBase):
    def __init__(self, fail_on_start=False, fail_on_stop=False):
        super().__init__()
        self.fail_on_start = fail_on_start
        self.fail_on_stop = fail_on_stop
        self.start_count = 0
        self._port = 0

    @property
    def port(self):
        return self._port

    async def _start(self):
        self.start_count += 1
        await sleep(1)
        if self.fail_on_start:
            raise OSError("start failed")
        self._port = 4242

    async def _stop(self):
        await sleep(1)
        if self.fail_on_stop:
            raise OSError("stop failed")
        self._port = 0


async def test_start_stop(autojump_clock):
    listener = DummyListener()

    assert listener.is_closed
    assert not listener.is_transitioning

    assert await listener.start() == 4242
    assert listener.is_open
    assert listener.state is ListenerState.OPEN

    await listener.stop()
    assert listener.is_closed
    assert listener.port == 0


async def test_concurrent_starts(nursery, autojump_clock):
    listener = DummyListener()
    ports = []

    async def _start():
        ports.append(await listener.start())

    nursery.start_soon(_start)
    nursery.start_soon(_start)

    await sleep(0.5)
    assert listener.state is ListenerState.PREPARING
    assert listener.is_transitioning

    await listener.wait_until_open()
    await sleep(0.1)

    assert ports == [4242, 4242]
    assert listener.start_count == 1

    await listener.stop()


async def test_start_while_closing(nursery, autojump_clock):
    listener = DummyListener()
    await listener.start()

    nursery.start_soon(listener.stop)
    await sleep(0.5)
    assert listener.state is ListenerState.CLOSING

    assert await listener.start() == 4242
    assert listener.start_count == 2
    assert listener.is_open

    await listener.stop()


async def test_failed_start(autojump_clock):
    listener = DummyListener(fail_on_start=True)

    with raises(OSError, match="start failed"):
        await listener.start()

    assert listener.is_closed


async def test_failed_stop(autojump_clock):
    listener = DummyListener(fail_on_stop=True)
    await listener.start()

    with raises(OSError, match="stop failed"):
        await listener.stop()

    assert listener.is_open

    listener.fail_on_stop = False
    await listener.stop()
    assert listener.is_closed


async def test_concurrent_start_after_failed_start(autojump_clock):
    listener = DummyListener(fail_on_start=True)
    outcomes = []

    async def _start(delay):
        await sleep(delay)
        try:
            await listener.start()
        except OSError as ex:
            outcomes.append(str(ex))
        else:
            outcomes.append("started")

    with fail_after(10):
        async with open_nursery() as nursery:
            nursery.start_soon(_start, 0)
            nursery.start_soon(_start, 0.5)

    assert outcomes == ["start failed", "start failed"]
    assert listener.start_count == 2
    assert listener.is_closed


async def test_stop_during_failed_start(autojump_clock):
    listener = DummyListener(fail_on_start=True)
    states = []

    async def _start():
        with raises(OSError, match="start failed"):
            await listener.start()

    async def _stop():
        await sleep(0.5)
        states.append(listener.state)
        await listener.stop()
        states.append(listener.state)

    with fail_after(10):
        async with open_nursery() as nursery:
            nursery.start_soon(_start)
            nursery.start_soon(_stop)

    assert states == [ListenerState.PREPARING, ListenerState.CLOSED]
    assert listener.port == 0


async def test_stop_during_successful_start(autojump_clock):
    listener = DummyListener()

    async def _stop():
        await sleep(0.5)
        assert listener.state is ListenerState.PREPARING
        await listener.stop()

    with fail_after(10):
        async with open_nursery() as nursery:
            nursery.start_soon(listener.start)
            nursery.start_soon(_stop)

    assert listener.start_count == 1
    assert listener.is_closed
    assert listener.port == 0


async def test_wait_until_settled(nursery, autojump_clock):
    listener = DummyListener(fail_on_start=True)

    async def _start():
        with raises(OSError):
            await listener.start()

    nursery.start_soon(_start)
    await sleep(0.5)
    assert listener.is_transitioning

    with fail_after(10):
        await listener.wait_until_settled()

    assert listener.is_closed
