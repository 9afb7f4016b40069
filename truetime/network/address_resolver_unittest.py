import socket

import pytest

from truetime.network import address_resolver


def addrinfo(*addresses):
    return [
        (socket.AF_INET, socket.SOCK_DGRAM, 17, "", (a, 0)) for a in addresses
    ]


class TestAddressResolver:

    def test_resolve_addresses_removes_duplicates(self, mocker) -> None:
        mock_getaddrinfo = mocker.patch(
            "truetime.network.address_resolver.socket.getaddrinfo",
            return_value=addrinfo("192.0.2.1", "192.0.2.2", "192.0.2.1"),
        )

        result = address_resolver.resolve_addresses("pool.example.com")

        assert result == ["192.0.2.1", "192.0.2.2"]
        mock_getaddrinfo.assert_called_once()
        assert mock_getaddrinfo.call_args[0][0] == "pool.example.com"

    def test_resolve_addresses_propagates_failure(self, mocker) -> None:
        mocker.patch(
            "truetime.network.address_resolver.socket.getaddrinfo",
            side_effect=socket.gaierror("unknown host"),
        )
        with pytest.raises(OSError):
            address_resolver.resolve_addresses("nonexistent.invalid")

    def test_is_reachable_true_on_connect(self, mocker) -> None:
        mock_connect = mocker.patch(
            "truetime.network.address_resolver.socket.create_connection"
        )
        assert address_resolver.is_reachable("192.0.2.1")
        mock_connect.assert_called_once_with(("192.0.2.1", 80), 5.0)

    def test_is_reachable_false_on_error(self, mocker) -> None:
        mocker.patch(
            "truetime.network.address_resolver.socket.create_connection",
            side_effect=ConnectionRefusedError(),
        )
        assert not address_resolver.is_reachable("192.0.2.1", 8080, 0.5)

    def test_is_reachable_against_local_listener(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            port = listener.getsockname()[1]
            assert address_resolver.is_reachable("127.0.0.1", port, 1.0)

    def test_resolve_reachable_addresses_filters(self, mocker) -> None:
        mocker.patch(
            "truetime.network.address_resolver.socket.getaddrinfo",
            return_value=addrinfo("192.0.2.1", "192.0.2.2", "192.0.2.3"),
        )
        mocker.patch(
            "truetime.network.address_resolver.is_reachable",
            side_effect=lambda address, port, timeout: address != "192.0.2.2",
        )

        result = address_resolver.resolve_reachable_addresses("pool")

        assert result == ["192.0.2.1", "192.0.2.3"]
