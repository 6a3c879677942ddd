import ipaddress


def format_address(address: tuple | None) -> str:
    """
    This function accepts IPv4/IPv6 tuples and
    returns the formatted address string with port number
    """
    if address is None:
        return "<no address>"
    try:
        host = ipaddress.ip_address(address[0])
        if host.is_unspecified:
            return f"*:{address[1]}"
        if isinstance(host, ipaddress.IPv4Address):
            return f"{host}:{address[1]}"
        # If IPv6 is mapped to IPv4
        elif host.ipv4_mapped:
            return f"{host.ipv4_mapped}:{address[1]}"
        return f"[{host}]:{address[1]}"
    except ValueError:
        return f"{address[0]}:{address[1]}"


def format_hex(data: bytes, limit: int = 16) -> str:
    """
    Render the first `limit` bytes of data as hex for debug output.
    """
    if len(data) > limit:
        return data[:limit].hex() + "…"
    return data.hex()
