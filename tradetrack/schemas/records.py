"""
TradeTrack — KYC & trade document request schemas.

Fields are optional at the HTTP layer; the tracker reports the first
missing one as a 400.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from tradetrack.schemas.logs import _LooseRequest

KYC_STATUSES = ("Draft", "Reviewed", "Signed", "Revoked")
DOC_TYPES = ("Invoice", "B/L", "COO", "PackingList", "Other")


# ── KYC ─────────────────────────────────────────────────
class KycCreateRequest(_LooseRequest):
    token_id: Optional[str | int] = Field(None, alias="tokenId")
    owner: Optional[str] = None
    file_hash: Optional[str] = Field(None, alias="fileHash")
    metadata_url: Optional[str] = Field(None, alias="metadataUrl")
    document_url: Optional[str] = Field(None, alias="documentUrl")
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    action: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    executor: Optional[str] = None


class KycActionRequest(_LooseRequest):
    """Update / delete body: log fields plus (for updates) any record fields."""
    action: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    executor: Optional[str] = None


# ── Trade documents ─────────────────────────────────────
class DocumentAttachRequest(_LooseRequest):
    token_id: Optional[int] = Field(None, alias="tokenId")
    owner: Optional[str] = None
    file_hash: Optional[str] = Field(None, alias="fileHash")
    uri: Optional[str] = None
    doc_type: Optional[str] = Field(None, alias="docType")
    signer: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    metadata_url: Optional[str] = Field(None, alias="metadataUrl")
    action: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")


class DocumentActionRequest(_LooseRequest):
    action: Optional[str] = None
    account: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
