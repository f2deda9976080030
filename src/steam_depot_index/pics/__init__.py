"""
PICS request layer.

Typed messages, transports, the correlation-ID dispatcher and the
client facade used by the rest of the collector.
"""

from steam_depot_index.pics.client import PicsClient
from steam_depot_index.pics.dispatcher import PicsDispatcher
from steam_depot_index.pics.messages import (
    AccessTokenRequest,
    AccessTokenResponse,
    AppId,
    AppRequest,
    ChangesSinceRequest,
    ChangesSinceResponse,
    DepotId,
    InboundMessage,
    ProductInfoRequest,
    ProductInfoResponse,
)
from steam_depot_index.pics.transport import PicsTransport, SteamClientTransport

__all__ = [
    "AccessTokenRequest",
    "AccessTokenResponse",
    "AppId",
    "AppRequest",
    "ChangesSinceRequest",
    "ChangesSinceResponse",
    "DepotId",
    "InboundMessage",
    "PicsClient",
    "PicsDispatcher",
    "PicsTransport",
    "ProductInfoRequest",
    "ProductInfoResponse",
    "SteamClientTransport",
]
