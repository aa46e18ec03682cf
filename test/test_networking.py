from trio.socket import SOCK_STREAM

from airlisten.networking import (
    create_socket,
    format_socket_address,
    get_socket_address,
    parse_backlog,
)


def test_get_socket_address():
    assert get_socket_address(("127.0.0.1", 1234)) == ("127.0.0.1", 1234)
    assert get_socket_address(("0.0.0.0", 1234)) == ("", 1234)


def test_format_socket_address():
    assert format_socket_address(("127.0.0.1", 80)) == "127.0.0.1:80"
    assert format_socket_address(("0.0.0.0", 80)) == "*:80"
    assert (
        format_socket_address(("10.0.0.1", 8080), format="http://{host}:{port}/")
        == "http://10.0.0.1:8080/"
    )


async def test_create_socket():
    with create_socket() as sock:
        assert sock.type == SOCK_STREAM

        await sock.bind(("127.0.0.1", 0))
        host, port = get_socket_address(sock)

        assert host == "127.0.0.1"
        assert port > 0
        assert format_socket_address(sock) == f"127.0.0.1:{port}"


def test_parse_backlog():
    assert parse_backlog(None) is None
    assert parse_backlog(-1) is None
    assert parse_backlog(0) == 0
    assert parse_backlog("16") == 16
