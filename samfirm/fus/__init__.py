"""FUS protocol client: nonce handshake, binary metadata and the binary stream."""

from samfirm.fus.auth import build_authorization
from samfirm.fus.client import ClientState, FusClient, FusResponse
from samfirm.fus.descriptor import BinaryDescriptor, parse_binary_inform

__all__ = [
    "build_authorization",
    "ClientState",
    "FusClient",
    "FusResponse",
    "BinaryDescriptor",
    "parse_binary_inform",
]
