"""
Pydantic schemas for API responses and normalized events.

This module contains:
- Snapshot models shared by API responses and broadcast events
- Response models for API responses
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Snapshot Models
# =============================================================================

class RoomResponse(BaseModel):
    """Snapshot of a room, built from the ORM object."""
    id: int
    channel: str
    chat_id: str
    name: str
    avatar: str
    username: Optional[str] = None
    phone: Optional[str] = None
    status_state: str
    status_last_changed: int
    unread_count: int = Field(..., ge=0)
    last_message_id: Optional[int] = None
    last_activity: int

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    """Snapshot of a message, built from the ORM object."""
    id: int
    room_id: int
    chat_id: str
    messenger_id: str
    content: str
    from_me: bool
    saved: bool
    distributed: bool
    seen: bool
    system: bool
    deleted: bool
    forwarded: bool
    failure: Optional[str] = None
    reply_message_id: Optional[int] = None
    reactions: dict[str, str] = Field(default_factory=dict)
    file_type: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    file_mime: Optional[str] = None
    timestamp: int

    model_config = {"from_attributes": True}


# =============================================================================
# Pydantic Response Models
# =============================================================================

class WebhookResponse(BaseModel):
    """Response model for a processed webhook delivery."""
    status: str = Field(default="ok", description="Operation status")
    received: int = Field(0, ge=0, description="Notifications found in the delivery")
    processed: int = Field(0, ge=0, description="Notifications reconciled successfully")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class RoomsListResponse(BaseModel):
    data: list[RoomResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=1, le=100)
    offset: int = Field(..., ge=0)


class MessagesListResponse(BaseModel):
    """
    Response model for GET /messages endpoint with pagination.

    Contains:
    - data: list of messages matching filters
    - total: total count of messages matching filters (ignoring pagination)
    - limit: number of messages per page
    - offset: starting position
    """
    data: list[MessageResponse] = Field(
        default_factory=list,
        description="List of messages"
    )
    total: int = Field(
        ...,
        ge=0,
        description="Total messages matching filters (ignoring limit/offset)"
    )
    limit: int = Field(
        ...,
        ge=1,
        le=100,
        description="Maximum messages per page"
    )
    offset: int = Field(
        ...,
        ge=0,
        description="Number of messages skipped"
    )


class StatsResponse(BaseModel):
    """Response model for GET /stats endpoint."""
    total_rooms: int = Field(..., ge=0)
    total_messages: int = Field(..., ge=0)
    inbound_messages: int = Field(..., ge=0)
    outbound_messages: int = Field(..., ge=0)
    unread_total: int = Field(..., ge=0)
    saved: int = Field(..., ge=0)
    distributed: int = Field(..., ge=0)
    seen: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    first_message_ts: Optional[int] = Field(None, description="Earliest provider timestamp (null if no messages)")
    last_message_ts: Optional[int] = Field(None, description="Latest provider timestamp (null if no messages)")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


# =============================================================================
# Processing Results
# =============================================================================

class ProcessingResult(BaseModel):
    """
    Outcome of reconciling one notification.

    outcome is one of: created, duplicate, updated, not_found,
    unrecognized_status, dropped, skipped, error
    """
    kind: str
    messenger_id: Optional[str] = None
    success: bool
    outcome: str
    event: Optional[dict[str, Any]] = None

    @property
    def should_broadcast(self) -> bool:
        return self.success and self.event is not None and self.outcome != "duplicate"
