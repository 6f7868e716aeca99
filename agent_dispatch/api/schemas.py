"""Pydantic schemas for the trigger API.

Request bodies use the camelCase field names the helpdesk webhooks send;
snake_case names are accepted as well.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AssignmentTrigger(BaseModel):
    """Request body for a primary assignment."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: int = Field(..., alias="accountId", gt=0)
    system_account_id: int | None = Field(None, alias="systemAccountId", gt=0)
    contact_id: int = Field(..., alias="contactId", gt=0)
    inbox_id: int = Field(..., alias="inboxId", gt=0)
    conversation_id: int = Field(..., alias="conversationId", gt=0)


class DispatchResponse(BaseModel):
    """Envelope for trigger results."""

    message: str
    data: dict[str, Any]


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str
    version: str
    database: str
