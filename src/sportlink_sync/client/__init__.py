from sportlink_sync.client.base import RemoteResponse, RemoteTransport
from sportlink_sync.client.laposta import LapostaClient
from sportlink_sync.client.stadion import StadionClient

__all__ = [
    "LapostaClient",
    "RemoteResponse",
    "RemoteTransport",
    "StadionClient",
]
