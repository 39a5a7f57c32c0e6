"""
TradeTrack — Contract role lookup.

The importer and exporter of a contract are whatever its ``deploy`` entry
recorded in ``extra``. Read-only.
"""

from dataclasses import asdict, dataclass
from typing import Iterable

from tradetrack.schemas.logs import LogEntry
from tradetrack.services.codec import normalize_address
from tradetrack.services.history import EntityHistoryLog


@dataclass(frozen=True)
class ContractRoles:
    importer: str = ""
    exporter: str = ""

    def holders(self) -> list[str]:
        return [a for a in (self.importer, self.exporter) if a]

    def includes(self, address: str) -> bool:
        wanted = (normalize_address(address) or "").lower()
        return bool(wanted) and wanted in (a.lower() for a in self.holders())

    def to_dict(self) -> dict:
        return asdict(self)


def roles_from_history(history: Iterable[LogEntry]) -> ContractRoles:
    """Roles from the first deploy entry; empty strings when there is none."""
    for entry in history:
        if entry.action == "deploy":
            extra = entry.extra or {}
            return ContractRoles(
                importer=normalize_address(extra.get("importer") or ""),
                exporter=normalize_address(extra.get("exporter") or ""),
            )
    return ContractRoles()


class RoleResolver:
    def __init__(self, contract_history: EntityHistoryLog):
        self.contract_history = contract_history

    async def get_roles(self, contract_key: str) -> ContractRoles:
        return roles_from_history(await self.contract_history.get(contract_key))
