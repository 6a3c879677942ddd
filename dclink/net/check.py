import ipaddress
import re

# Underscores are tolerated, some DC and proxy hostnames use them.
_label_valid = re.compile(r"[A-Z\d\-_]{1,63}$", re.IGNORECASE)


def ip_version(host: str) -> int | None:
    """
    Return 4 or 6 if host is an IPv4 or IPv6 address literal, `None` otherwise.
    """
    try:
        return ipaddress.ip_address(host).version
    except ValueError:
        return None


def is_valid_host(host: str) -> bool:
    """
    Checks if the passed string is a valid DNS hostname or an IPv4/IPv6 address.
    """
    if ip_version(host) is not None:
        return True
    try:
        host_bytes = host.encode("idna")
    except UnicodeError:
        return False
    # RFC1035: 255 bytes or less.
    if not host_bytes or len(host_bytes) > 255:
        return False
    if host_bytes.endswith(b"."):
        host_bytes = host_bytes[:-1]
    return all(_label_valid.match(label) for label in host_bytes.decode("ascii").split("."))


def is_valid_port(port: int) -> bool:
    return 0 <= port <= 65535
