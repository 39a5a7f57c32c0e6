"""
TradeTrack — Notification schemas.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from tradetrack.schemas.logs import now_ms


class NotificationType(str, Enum):
    KYC = "kyc"
    DOCUMENT = "document"
    TRANSACTION = "transaction"
    SYSTEM = "system"
    AGREEMENT = "agreement"


class Notification(BaseModel):
    """Created by fan-out; afterwards only ``read`` ever changes."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., alias="userId")
    executor_id: Optional[str] = Field(None, alias="executorId")
    type: NotificationType
    title: str
    message: str
    read: bool = False
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    extra_data: Optional[dict[str, Any]] = Field(None, alias="extraData")

    model_config = {"populate_by_name": True}

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class NotifyPayload:
    """What to tell recipients about one event."""
    title: str
    message: str
    type: str = NotificationType.SYSTEM.value
    tx_hash: Optional[str] = None
    data: Optional[dict[str, Any]] = None

    @property
    def notification_type(self) -> NotificationType:
        try:
            return NotificationType(self.type)
        except ValueError:
            return NotificationType.SYSTEM

    def extra_data(self) -> Optional[dict[str, Any]]:
        extra = {k: v for k, v in (("txHash", self.tx_hash), ("data", self.data)) if v is not None}
        return extra or None
