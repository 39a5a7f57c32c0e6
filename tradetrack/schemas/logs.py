"""
TradeTrack — Log entry schemas (entity history, activity, aggregated index).

Field names are camelCase on the wire and in the store; absent optional
fields stay absent in stored documents.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class ActivityType(str, Enum):
    ON_CHAIN = "onChain"
    BACKEND = "backend"


class OnChainInfo(BaseModel):
    """Point-in-time receipt check captured when the entry was written."""
    status: str | int
    block_number: Optional[int] = Field(None, alias="blockNumber")
    confirmations: Optional[int] = None

    model_config = {"populate_by_name": True}


class _StoredModel(BaseModel):
    model_config = {"populate_by_name": True}

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Per-entity history ──────────────────────────────────
class LogEntry(_StoredModel):
    action: str
    account: str
    tx_hash: Optional[str] = Field(None, alias="txHash")
    signer: Optional[str] = None
    executor: Optional[str] = None
    extra: Optional[dict[str, Any]] = None
    on_chain_info: Optional[OnChainInfo] = Field(None, alias="onChainInfo")
    timestamp: int


# ── Global activity ─────────────────────────────────────
class ActivityLogEntry(_StoredModel):
    account: str
    type: ActivityType
    action: str
    tx_hash: Optional[str] = Field(None, alias="txHash")
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    extra: Optional[dict[str, Any]] = None
    on_chain_info: Optional[OnChainInfo] = Field(None, alias="onChainInfo")
    timestamp: int


class AggregatedActivityEntry(ActivityLogEntry):
    id: str
    account_lower: str = Field(..., alias="accountLower")
    tx_hash_lower: Optional[str] = Field(None, alias="txHashLower")
    contract_lower: Optional[str] = Field(None, alias="contractLower")
    tags: list[str] = []


# ── Typed "extra" payloads for known actions ────────────
class DeployExtra(BaseModel):
    importer: str = Field(..., min_length=1)
    exporter: str = Field(..., min_length=1)
    required_amount: Optional[str | int] = Field(None, alias="requiredAmount")
    token: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class DepositExtra(BaseModel):
    amount: str | int
    token: Optional[str] = None

    model_config = {"extra": "allow"}


class LinkDocumentExtra(BaseModel):
    token_id: str | int = Field(..., alias="tokenId")
    contract_address: Optional[str] = Field(None, alias="contractAddress")

    model_config = {"populate_by_name": True, "extra": "allow"}


# ── Request bodies ──────────────────────────────────────
class _LooseRequest(BaseModel):
    """Every field optional: the codec names the first missing one."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    def payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ActivityCreateRequest(_LooseRequest):
    timestamp: Optional[int] = None
    type: Optional[str] = None
    action: Optional[str] = None
    account: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    extra: Optional[dict[str, Any]] = None
    on_chain_info: Optional[OnChainInfo] = Field(None, alias="onChainInfo")
    tags: Optional[list[str]] = None


class ContractLogRequest(_LooseRequest):
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    action: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    account: Optional[str] = None
    extra: Optional[dict[str, Any]] = None
    verify_on_chain: bool = Field(False, alias="verifyOnChain")


class TagRequest(BaseModel):
    tag: Optional[str] = Field(None, max_length=100)
