import ssl
from dataclasses import dataclass

Address = tuple[str, int]

kw_only = {"kw_only": True}


@dataclass(frozen=True, **kw_only)
class SocketConfig:
    """
    Parameters for opening the raw socket at the bottom of a layer chain.

    Instances are shared by reference between a connection context and all of its forks.
    """

    connect_timeout: float | None = 10.0
    """Seconds to wait for the TCP (and TLS) handshake. `None` waits forever."""
    bind_address: Address | None = None
    """A local `(host, port)` tuple to bind to before connecting."""
    ssl_context: ssl.SSLContext | None = None
    """
    The TLS context used for secure connections.
    If unset, `ssl.create_default_context()` is used.
    """
    server_hostname: str | None = None
    """Override the SNI / hostname to verify for secure connections."""

    def get_ssl_context(self) -> ssl.SSLContext:
        if self.ssl_context is not None:
            return self.ssl_context
        return ssl.create_default_context()
