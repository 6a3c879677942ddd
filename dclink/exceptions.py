"""
Exceptions raised by dclink.

We use builtin exceptions wherever they fit and only specialize where a caller
needs to tell our failures apart. Every specialized exception is a subclass of
DcLinkException and of the builtin it refines, so that code catching e.g.
`ValueError` keeps working.

Failures of the underlying transport (`OSError`, `ssl.SSLError`, timeouts,
cancellation) are never wrapped and reach the caller unchanged.
"""


class DcLinkException(Exception):
    """
    Base class for all exceptions thrown by dclink.
    """

    def __init__(self, message=None):
        super().__init__(message)


class InvalidDcId(DcLinkException, ValueError):
    """
    A datacenter id is malformed or outside of the valid range.
    """


class ChainExhausted(DcLinkException, IndexError):
    """
    A layer was requested from a connection context whose layer stack is empty or fully consumed.
    """


class ProxyError(DcLinkException, ConnectionError):
    """
    An upstream proxy refused the tunnel or answered with malformed data.
    """
