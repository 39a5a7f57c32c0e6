"""
TradeTrack — Activity tracking flows.

One logical event (a contract action, a KYC change, a document change) is
validated up front, written to the entity's history, optionally mirrored
into the activity logs, and announced to the parties involved.

The writes of one event are independent: history failures propagate,
activity mirroring and notifications are best effort and only logged.
"""

import asyncio
import logging
from typing import Any, Optional

from tradetrack.errors import NotFoundError, TradeTrackError, ValidationError
from tradetrack.schemas.logs import LogEntry, OnChainInfo
from tradetrack.schemas.notification import NotificationType, NotifyPayload
from tradetrack.schemas.records import DOC_TYPES, KYC_STATUSES
from tradetrack.services.activity import ActivityLogService
from tradetrack.services.aggregated import AggregatedActivityLog
from tradetrack.services.codec import (
    CONTRACT,
    DOCUMENT,
    KYC,
    decode_log_entry,
    is_missing,
    normalize_address,
    require_fields,
)
from tradetrack.services.history import EntityHistoryLog
from tradetrack.services.notifications import NotificationFanout
from tradetrack.services.records import EntityRecords
from tradetrack.services.roles import RoleResolver, roles_from_history
from tradetrack.services.store import ARRAY_CONTAINS

logger = logging.getLogger(__name__)

# Contract progress: step -> actions that complete it
CONTRACT_STEPS: dict[str, tuple[str, ...]] = {
    "deploy": ("deploy",),
    "deposit": ("deposit",),
    "approveImporter": ("approveImporter", "approve_importer"),
    "approveExporter": ("approveExporter", "approve_exporter"),
    "finalize": ("finalize",),
}

KYC_REQUIRED = ("tokenId", "owner", "fileHash", "metadataUrl")
DOCUMENT_REQUIRED = ("tokenId", "owner", "fileHash", "uri", "docType")

# Request keys that describe the log entry rather than the record
_KYC_LOG_FIELDS = ("action", "txHash", "executor")
_DOCUMENT_LOG_FIELDS = ("action", "account", "txHash")
# Only attach_document links a document to contracts
_DOCUMENT_LINK_FIELDS = ("linkedContracts",)


def _compact(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if v is not None}


def _token_id(value: Any) -> str:
    return str(value).strip()


def _document_token(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("tokenId", "tokenId must be an integer") from e


def _check_choice(data: dict, field_name: str, choices: tuple[str, ...]) -> None:
    value = data.get(field_name)
    if value is not None and value not in choices:
        raise ValidationError(field_name, f"{field_name} must be one of {list(choices)}")


class ActivityTracker:
    def __init__(
        self,
        activity: ActivityLogService,
        aggregated: AggregatedActivityLog,
        contract_log: EntityHistoryLog,
        document_log: EntityHistoryLog,
        kyc_log: EntityHistoryLog,
        kyc_records: EntityRecords,
        document_records: EntityRecords,
        roles: RoleResolver,
        fanout: NotificationFanout,
    ):
        self.activity = activity
        self.aggregated = aggregated
        self.contract_log = contract_log
        self.document_log = document_log
        self.kyc_log = kyc_log
        self.kyc_records = kyc_records
        self.document_records = document_records
        self.roles = roles
        self.fanout = fanout

    # ═══════════════════════════════════════════════════
    # Contracts
    # ═══════════════════════════════════════════════════

    async def record_contract_action(
        self, payload: dict, on_chain_info: Optional[OnChainInfo] = None,
    ) -> tuple[str, LogEntry]:
        """Log one contract action. Returns the contract key and the stored entry."""
        data = dict(payload)
        if on_chain_info is not None:
            data["onChainInfo"] = on_chain_info
        entry = decode_log_entry(CONTRACT, data)
        contract = self.contract_log.key_for(data["contractAddress"])

        await self.contract_log.append(contract, entry)
        await self._mirror_activity(contract, entry)

        notice = NotifyPayload(
            type=NotificationType.AGREEMENT.value,
            title=f"Contract {entry.action}",
            message=f"{entry.account} performed {entry.action} on {contract}",
            tx_hash=entry.tx_hash,
            data={"contractAddress": contract, "action": entry.action},
        )
        await self._announce(entry.account, notice, contracts=[contract])
        return contract, entry

    async def _mirror_activity(self, contract: str, entry: LogEntry) -> None:
        """Copy a contract entry into the global and aggregated activity logs."""
        payload = _compact({
            "account": entry.account,
            "type": "onChain" if entry.tx_hash else "backend",
            "action": entry.action,
            "txHash": entry.tx_hash,
            "contractAddress": contract,
            "extra": entry.extra,
            "onChainInfo": entry.on_chain_info,
            "timestamp": entry.timestamp,
        })
        results = await asyncio.gather(
            self.activity.add(payload), self.aggregated.add(payload), return_exceptions=True,
        )
        for target, outcome in zip(("activity", "aggregated"), results):
            if isinstance(outcome, BaseException):
                logger.warning(f"⚠️  {target} mirror of {contract} {entry.action} failed: {outcome}")

    async def contract_keys(self) -> list[str]:
        return await self.contract_log.keys()

    async def contract_details(self, address: str) -> dict:
        doc = await self.contract_log.get_document(address)
        if doc is None:
            raise NotFoundError(self.contract_log.collection, self.contract_log.key_for(address))
        return doc

    async def contract_history(self, address: str) -> list[LogEntry]:
        return await self.contract_log.get(address)

    async def contract_step_status(self, address: str) -> dict:
        history = await self.contract_log.get(address)
        if not history:
            raise NotFoundError(self.contract_log.collection, self.contract_log.key_for(address))
        done = {e.action for e in history}
        status: dict[str, Any] = {
            step: any(a in done for a in actions) for step, actions in CONTRACT_STEPS.items()
        }
        status["contractAddress"] = self.contract_log.key_for(address)
        status["lastAction"] = history[-1].action
        return status

    async def contracts_for_user(self, address: str) -> list[dict]:
        """Contracts where ``address`` is importer or exporter, newest activity first."""
        keys = await self.contract_log.keys()
        histories = await self.contract_log.histories_for(keys)
        contracts = []
        for key, history in histories.items():
            roles = roles_from_history(history)
            if not roles.includes(address):
                continue
            # a role match implies a deploy entry, so the history is non-empty
            contracts.append({
                "address": key,
                "createdAt": history[0].timestamp,
                "lastActivityAt": history[-1].timestamp,
                "lastAction": history[-1].to_doc(),
                "roles": roles.to_dict(),
            })
        contracts.sort(key=lambda c: c["lastActivityAt"], reverse=True)
        return contracts

    # ═══════════════════════════════════════════════════
    # KYC
    # ═══════════════════════════════════════════════════

    async def create_kyc(self, payload: dict) -> dict:
        data = dict(payload)
        require_fields(data, KYC_REQUIRED)
        _check_choice(data, "status", KYC_STATUSES)
        token_id = _token_id(data["tokenId"])
        owner = normalize_address(data["owner"])

        entry = decode_log_entry(KYC, {
            "action": data.get("action"),
            "txHash": data.get("txHash"),
            "account": owner,
            "executor": data.get("executor"),
        })

        record = await self.kyc_records.create(token_id, _compact({
            "tokenId": token_id,
            "owner": owner,
            "fileHash": data["fileHash"],
            "metadataUrl": data["metadataUrl"],
            "documentUrl": data.get("documentUrl"),
            "name": data.get("name"),
            "description": data.get("description"),
            "status": data.get("status") or "Draft",
        }))
        await self.kyc_log.append(token_id, entry)
        await self._announce_kyc(token_id, entry, "created")
        return record

    async def update_kyc(self, token_id: str, payload: dict) -> dict:
        data = dict(payload)
        require_fields(data, ("action", "executor"))
        _check_choice(data, "status", KYC_STATUSES)
        token_id = _token_id(token_id)
        current = await self.kyc_records.require(token_id)

        changes = {k: v for k, v in data.items() if k not in _KYC_LOG_FIELDS}
        if "owner" in changes:
            changes["owner"] = normalize_address(changes["owner"])
        entry = decode_log_entry(KYC, {
            "action": data["action"],
            "txHash": data.get("txHash"),
            "account": changes.get("owner") or current["owner"],
            "executor": data["executor"],
        })

        record = await self.kyc_records.update(token_id, changes)
        await self.kyc_log.append(token_id, entry)
        await self._announce_kyc(token_id, entry, "updated")
        return record

    async def delete_kyc(self, token_id: str, payload: dict) -> dict:
        """Removes the KYC record; its history stays."""
        data = dict(payload)
        require_fields(data, ("action", "executor"))
        token_id = _token_id(token_id)
        current = await self.kyc_records.require(token_id)

        entry = decode_log_entry(KYC, {
            "action": data["action"],
            "txHash": data.get("txHash"),
            "account": current["owner"],
            "executor": data["executor"],
        })

        await self.kyc_records.delete(token_id)
        await self.kyc_log.append(token_id, entry)
        await self._announce_kyc(token_id, entry, "deleted")
        return current

    async def get_kyc(self, token_id: str) -> dict:
        return await self.kyc_records.require(_token_id(token_id))

    async def kycs_by_owner(self, owner: str) -> list[dict]:
        return await self.kyc_records.find("owner", normalize_address(owner))

    async def kyc_history(self, token_id: str) -> dict:
        """History document; NotFoundError when nothing was ever logged."""
        doc = await self.kyc_log.get_document(token_id)
        if doc is None:
            raise NotFoundError(self.kyc_log.collection, _token_id(token_id))
        return doc

    async def _announce_kyc(self, token_id: str, entry: LogEntry, verb: str) -> None:
        notice = NotifyPayload(
            type=NotificationType.KYC.value,
            title=f"KYC {verb}",
            message=f"KYC #{token_id} {verb} ({entry.action}) by {entry.executor}",
            tx_hash=entry.tx_hash or None,
            data={"tokenId": token_id, "action": entry.action, "owner": entry.account},
        )
        await self._announce(entry.executor, notice)

    # ═══════════════════════════════════════════════════
    # Trade documents
    # ═══════════════════════════════════════════════════

    async def attach_document(self, contract_address: str, payload: dict) -> dict:
        data = dict(payload)
        require_fields(data, DOCUMENT_REQUIRED)
        _check_choice(data, "docType", DOC_TYPES)
        token_id = _document_token(data["tokenId"])
        contract = self.contract_log.key_for(contract_address)
        owner = normalize_address(data["owner"])

        entry = decode_log_entry(DOCUMENT, {
            "action": data.get("action") or "attachDocument",
            "account": data.get("signer") or owner,
            "signer": data.get("signer"),
            "txHash": data.get("txHash"),
            "extra": {"contractAddress": contract},
        })

        record = await self.document_records.create(str(token_id), _compact({
            "tokenId": token_id,
            "owner": owner,
            "fileHash": data["fileHash"],
            "uri": data["uri"],
            "docType": data["docType"],
            "linkedContracts": [contract],
            "signer": normalize_address(data.get("signer")),
            "name": data.get("name"),
            "description": data.get("description"),
            "metadataUrl": data.get("metadataUrl"),
        }))
        await self.document_log.append(token_id, entry)
        await self._announce_document(token_id, entry, "attached", [contract])
        return record

    async def update_document(self, token_id: Any, payload: dict) -> dict:
        data = dict(payload)
        require_fields(data, ("account",))
        _check_choice(data, "docType", DOC_TYPES)
        token_id = _document_token(token_id)
        current = await self.document_records.require(str(token_id))

        entry = decode_log_entry(DOCUMENT, {
            "action": data.get("action") or "updateDocument",
            "account": data["account"],
            "txHash": data.get("txHash"),
        })
        changes = {
            k: v for k, v in data.items()
            if k not in _DOCUMENT_LOG_FIELDS and k not in _DOCUMENT_LINK_FIELDS
        }
        if "owner" in changes:
            changes["owner"] = normalize_address(changes["owner"])

        record = await self.document_records.update(str(token_id), changes)
        await self.document_log.append(token_id, entry)
        await self._announce_document(
            token_id, entry, "updated", record.get("linkedContracts") or current.get("linkedContracts", []),
        )
        return record

    async def delete_document(self, token_id: Any, payload: dict) -> dict:
        data = dict(payload)
        require_fields(data, ("account",))
        token_id = _document_token(token_id)
        current = await self.document_records.require(str(token_id))

        entry = decode_log_entry(DOCUMENT, {
            "action": data.get("action") or "deleteDocument",
            "account": data["account"],
            "txHash": data.get("txHash"),
        })

        await self.document_records.delete(str(token_id))
        await self.document_log.append(token_id, entry)
        await self._announce_document(token_id, entry, "deleted", current.get("linkedContracts", []))
        return current

    async def get_document(self, token_id: Any) -> dict:
        return await self.document_records.require(str(_document_token(token_id)))

    async def documents_by_owner(self, owner: str) -> list[dict]:
        return await self.document_log.find_with_history(
            self.document_records.collection, "owner", normalize_address(owner),
        )

    async def documents_by_contract(self, contract_address: str) -> list[dict]:
        return await self.document_log.find_with_history(
            self.document_records.collection, "linkedContracts",
            self.contract_log.key_for(contract_address), op=ARRAY_CONTAINS,
        )

    async def document_history(self, token_id: Any) -> dict:
        doc = await self.document_log.get_document(_document_token(token_id))
        if doc is None:
            raise NotFoundError(self.document_log.collection, str(token_id))
        return doc

    async def _announce_document(
        self, token_id: int, entry: LogEntry, verb: str, contracts: list[str],
    ) -> None:
        notice = NotifyPayload(
            type=NotificationType.DOCUMENT.value,
            title=f"Document {verb}",
            message=f"Document #{token_id} {verb} ({entry.action}) by {entry.account}",
            tx_hash=entry.tx_hash or None,
            data={"tokenId": token_id, "action": entry.action, "contracts": list(contracts)},
        )
        await self._announce(entry.account, notice, contracts=contracts)

    # ── Notifications ───────────────────────────────────

    async def _announce(
        self, executor: Optional[str], notice: NotifyPayload, contracts: Optional[list[str]] = None,
    ) -> None:
        """Admins + executor, then the role holders of ``contracts`` (never the executor twice)."""
        if not is_missing(executor):
            await self.fanout.notify_admins_and_executor(executor, notice)

        holders: list[str] = []
        for contract in contracts or []:
            try:
                holders.extend((await self.roles.get_roles(contract)).holders())
            except TradeTrackError as e:
                logger.warning(f"⚠️  Role lookup for {contract} failed: {e}")
        if holders:
            await self.fanout.notify_role_holders(holders, notice, exclude_executor=executor)
