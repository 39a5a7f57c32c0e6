"""
TradeTrack — Pydantic request/response schemas.
"""

from pydantic import BaseModel

from tradetrack.schemas.logs import (  # noqa: F401
    ActivityCreateRequest,
    ActivityLogEntry,
    ActivityType,
    AggregatedActivityEntry,
    ContractLogRequest,
    LogEntry,
    OnChainInfo,
    TagRequest,
)
from tradetrack.schemas.notification import Notification, NotificationType, NotifyPayload  # noqa: F401
from tradetrack.schemas.records import (  # noqa: F401
    DocumentActionRequest,
    DocumentAttachRequest,
    KycActionRequest,
    KycCreateRequest,
)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0.0"
    timestamp: str | None = None
    store: str = "memory"
