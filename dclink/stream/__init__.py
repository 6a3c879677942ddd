"""
Stream chains: a connection to a DC is a stack of layers on top of a raw socket.

    - ConnectionContext: declares the layers and the target, and builds the chain on demand.
    - Layers: transport, obfuscation, packet framing and upstream proxies.
      Importing this package registers all built-in layer kinds.
"""
from dclink.stream import layers
from dclink.stream.config import SocketConfig
from dclink.stream.context import ConnectionContext
from dclink.stream.layer import LayerKind
from dclink.stream.layer import LayerSpec

__all__ = [
    "layers",
    "SocketConfig",
    "ConnectionContext",
    "LayerKind",
    "LayerSpec",
]
