"""
TradeTrack — Log entry codec.

Turns raw request payloads into validated ``LogEntry`` / ``ActivityLogEntry``
models. Nothing reaches the store without passing through here: the
timestamp is defaulted first, then required fields are checked in order and
the first missing one is reported as a ``ValidationError``.
"""

import logging
from typing import Any, Optional

from eth_utils import is_hex_address, to_checksum_address
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from tradetrack.errors import ValidationError
from tradetrack.schemas.logs import (
    ActivityLogEntry,
    ActivityType,
    DeployExtra,
    DepositExtra,
    LinkDocumentExtra,
    LogEntry,
    OnChainInfo,
    now_ms,
)

logger = logging.getLogger(__name__)

CONTRACT = "contract"
DOCUMENT = "document"
KYC = "kyc"
ACTIVITY = "activity"

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    ACTIVITY: ("timestamp", "type", "action", "account"),
    CONTRACT: ("contractAddress", "action", "txHash", "account"),
    DOCUMENT: ("action", "account"),
    KYC: ("action", "account", "executor"),
}

ACTIONS: dict[str, frozenset[str]] = {
    CONTRACT: frozenset({
        "deploy", "deposit", "approveImporter", "approveExporter",
        "approve_importer", "approve_exporter", "finalize", "linkDocument",
    }),
    DOCUMENT: frozenset({
        "mintDocument", "attachDocument", "updateDocument", "reviewDocument",
        "signDocument", "revokeDocument", "deleteDocument", "linkDocument",
    }),
    KYC: frozenset({
        "mintKYC", "reviewKYC", "signKYC", "revokeKYC", "deleteKYC",
        "createKyc", "updateKyc", "deleteKyc",
    }),
}

# Typed "extra" for known actions; any other action keeps an opaque map
EXTRA_SCHEMAS: dict[str, type[BaseModel]] = {
    "deploy": DeployExtra,
    "deposit": DepositExtra,
    "linkDocument": LinkDocumentExtra,
}
_EXTRA_ADDRESS_FIELDS = ("importer", "exporter", "contractAddress")

# Entity kinds whose entries store "" when no transaction hash is given
_TX_SENTINEL_KINDS = (DOCUMENT, KYC)


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_address(value: Any) -> Any:
    """EIP-55 checksum for well-formed hex addresses; other strings are only trimmed."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    if is_hex_address(value):
        return to_checksum_address(value)
    return value


def require_fields(data: dict, fields: tuple[str, ...]) -> None:
    for name in fields:
        if is_missing(data.get(name)):
            raise ValidationError(name)


def _first_error_field(exc: PydanticValidationError, prefix: str = "") -> str:
    errors = exc.errors()
    loc = errors[0]["loc"] if errors else ()
    name = ".".join(str(part) for part in loc) or "payload"
    return f"{prefix}.{name}" if prefix else name


def _build(model: type[BaseModel], fields: dict):
    try:
        return model.model_validate(fields)
    except PydanticValidationError as e:
        field = _first_error_field(e)
        raise ValidationError(field, f"{field} invalid: {e.errors()[0]['msg']}") from e


def decode_extra(action: str, extra: Any) -> Optional[dict]:
    """Validate ``extra`` against the schema registered for ``action``."""
    if extra is None:
        return None
    if not isinstance(extra, dict):
        raise ValidationError("extra", "extra must be an object")

    schema = EXTRA_SCHEMAS.get(action)
    if schema is None:
        return dict(extra)

    try:
        model = schema.model_validate(extra)
    except PydanticValidationError as e:
        field = _first_error_field(e, prefix="extra")
        raise ValidationError(field, f"{field} invalid for {action}: {e.errors()[0]['msg']}") from e

    doc = model.model_dump(by_alias=True, exclude_none=True)
    for name in _EXTRA_ADDRESS_FIELDS:
        if name in doc:
            doc[name] = normalize_address(doc[name])
    return doc


def decode_on_chain_info(value: Any) -> Optional[dict]:
    if value is None:
        return None
    if isinstance(value, OnChainInfo):
        return value.model_dump(by_alias=True, exclude_none=True)
    try:
        return OnChainInfo.model_validate(value).model_dump(by_alias=True, exclude_none=True)
    except PydanticValidationError as e:
        field = _first_error_field(e, prefix="onChainInfo")
        raise ValidationError(field, f"{field} invalid") from e


def _with_timestamp(payload: dict) -> dict:
    data = dict(payload)
    if is_missing(data.get("timestamp")):
        data["timestamp"] = now_ms()
    return data


def decode_log_entry(kind: str, payload: dict) -> LogEntry:
    """
    Validate a contract / document / KYC history entry.

    Raises ValidationError naming the first missing required field, an
    unknown action, or the first invalid field of a typed ``extra``.
    """
    if kind not in ACTIONS:
        raise ValueError(f"Unknown entity kind: {kind}")

    data = _with_timestamp(payload)
    require_fields(data, REQUIRED_FIELDS[kind])

    action = str(data["action"]).strip()
    if action not in ACTIONS[kind]:
        raise ValidationError("action", f"unknown {kind} action: {action}")

    fields: dict[str, Any] = {
        "action": action,
        "account": normalize_address(data["account"]),
        "timestamp": data["timestamp"],
    }

    tx_hash = data.get("txHash")
    if tx_hash is None and kind in _TX_SENTINEL_KINDS:
        tx_hash = ""
    if tx_hash is not None:
        fields["txHash"] = tx_hash.strip() if isinstance(tx_hash, str) else tx_hash

    for name in ("signer", "executor"):
        if data.get(name) is not None:
            fields[name] = normalize_address(data[name])

    extra = decode_extra(action, data.get("extra"))
    if extra is not None:
        fields["extra"] = extra

    on_chain = decode_on_chain_info(data.get("onChainInfo"))
    if on_chain is not None:
        fields["onChainInfo"] = on_chain

    return _build(LogEntry, fields)


def decode_activity(payload: dict) -> ActivityLogEntry:
    """Validate a global activity entry. Actions are free-form; ``extra`` stays opaque."""
    data = _with_timestamp(payload)
    require_fields(data, REQUIRED_FIELDS[ACTIVITY])

    try:
        activity_type = ActivityType(str(data["type"]).strip())
    except ValueError as e:
        raise ValidationError("type", f"type must be one of {[t.value for t in ActivityType]}") from e

    fields: dict[str, Any] = {
        "account": normalize_address(data["account"]),
        "type": activity_type,
        "action": str(data["action"]).strip(),
        "timestamp": data["timestamp"],
    }
    if data.get("txHash") is not None:
        fields["txHash"] = data["txHash"]
    if data.get("contractAddress") is not None:
        fields["contractAddress"] = normalize_address(data["contractAddress"])

    extra = data.get("extra")
    if extra is not None:
        if not isinstance(extra, dict):
            raise ValidationError("extra", "extra must be an object")
        fields["extra"] = dict(extra)

    on_chain = decode_on_chain_info(data.get("onChainInfo"))
    if on_chain is not None:
        fields["onChainInfo"] = on_chain

    return _build(ActivityLogEntry, fields)
