"""Contains utility functions for network stuff"""

from netaddr import valid_ipv4, valid_ipv6


def is_port(port):
    """Checks if a port is valid"""

    return isinstance(port, int) and 0 < port <= 65535


def is_ip(ip):
    """Checks if an IP is a valid IPv4 or IPv6 address"""

    return bool(valid_ipv4(ip) or valid_ipv6(ip))


def split_address(address, default_port):
    """Split ``host[:port]`` into host and port.

    IPv6 addresses need brackets when a port is given, e.g.
    ``[fd00::1]:2377``.

    Returns:
        tuple of (host, port)

    Raises:
        ValueError if the port is invalid or the host is empty.
    """
    if not address:
        raise ValueError("address can't be empty")

    host, port = address, default_port
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        if rest:
            port = rest.lstrip(":")
    elif address.count(":") == 1:
        host, port = address.split(":")

    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"invalid port in address '{address}'")

    if not host or not is_port(port):
        raise ValueError(f"invalid address '{address}'")

    return host, port


def join_address(host, port):
    """The inverse of :func:`split_address`."""
    if valid_ipv6(host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"
