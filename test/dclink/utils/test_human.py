from dclink.utils import human


def test_format_address():
    assert human.format_address(("::1", "54010", "0", "0")) == "[::1]:54010"
    assert (
        human.format_address(("::ffff:127.0.0.1", "54010", "0", "0"))
        == "127.0.0.1:54010"
    )
    assert human.format_address(("127.0.0.1", "54010")) == "127.0.0.1:54010"
    assert human.format_address(("example.com", "54010")) == "example.com:54010"
    assert human.format_address(("::", "8080")) == "*:8080"
    assert human.format_address(("0.0.0.0", "8080")) == "*:8080"
    assert human.format_address(None) == "<no address>"


def test_format_hex():
    assert human.format_hex(b"\x01\x02") == "0102"
    assert human.format_hex(b"\xff" * 20, limit=2) == "ffff…"
