from .framing import AbridgedLayer
from .framing import IntermediateLayer
from .framing import IntermediatePaddedLayer
from .obfuscation import ObfuscationLayer
from .proxy import HttpProxyLayer
from .proxy import Socks5ProxyLayer
from .transport import TransportLayer

__all__ = [
    "AbridgedLayer",
    "IntermediateLayer",
    "IntermediatePaddedLayer",
    "ObfuscationLayer",
    "HttpProxyLayer",
    "Socks5ProxyLayer",
    "TransportLayer",
]
