"""
Message contracts for the PICS (Product Info Cache Server) protocol.

These Pydantic models describe the requests this collector issues and
the responses it consumes, independent of the underlying transport.
"""

from typing import Annotated, Any

from pydantic import BaseModel, Field

# Steam app and depot IDs are unsigned 32-bit integers
AppId = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]
DepotId = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]
ChangeNumber = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]


class ChangesSinceRequest(BaseModel):
    """Ask for app/package changes after a change number."""

    since_change_number: ChangeNumber = 0
    send_app_changes: bool = True
    send_package_changes: bool = False


class AccessTokenRequest(BaseModel):
    """Ask for access tokens for a set of apps."""

    app_ids: list[AppId] = Field(default_factory=list)


class AppRequest(BaseModel):
    """A single app entry in a product info request."""

    app_id: AppId
    access_token: int = Field(default=0, ge=0)


class ProductInfoRequest(BaseModel):
    """Ask for the metadata trees of a set of apps."""

    apps: list[AppRequest] = Field(default_factory=list)


PicsRequest = ChangesSinceRequest | AccessTokenRequest | ProductInfoRequest


class ChangesSinceResponse(BaseModel):
    """
    Answer to a ChangesSinceRequest.

    `last_change_number` echoes the change number the server diffed from,
    `current_change_number` is the head of the change feed.
    """

    current_change_number: ChangeNumber = 0
    last_change_number: ChangeNumber = 0
    requires_full_update: bool = False
    requires_full_app_update: bool = False
    app_changes: dict[int, int] = Field(
        default_factory=dict,
        description="Changed app ID -> change number at which it changed",
    )

    @property
    def signals_full_update(self) -> bool:
        """Whether the server refuses to serve an incremental diff."""
        return self.requires_full_update or self.requires_full_app_update


class AccessTokenResponse(BaseModel):
    """Answer to an AccessTokenRequest."""

    app_tokens: dict[int, int] = Field(default_factory=dict)
    denied_app_ids: list[int] = Field(default_factory=list)


class ProductInfoResponse(BaseModel):
    """One part of the (possibly multi-part) answer to a ProductInfoRequest."""

    apps: dict[int, dict[str, Any]] = Field(
        default_factory=dict,
        description="App ID -> decoded appinfo key/value tree",
    )
    unknown_app_ids: list[int] = Field(default_factory=list)
    response_pending: bool = False


PicsResponse = ChangesSinceResponse | AccessTokenResponse | ProductInfoResponse


class InboundMessage(BaseModel):
    """A response delivered by the transport, tagged with its correlation ID."""

    job_id: str
    body: PicsResponse
