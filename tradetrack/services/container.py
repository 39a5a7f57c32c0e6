"""
TradeTrack — Service wiring.

Everything is built around one RecordStore; the admin list and the optional
chain verifier are injected here rather than read from settings.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from tradetrack.services.activity import ActivityLogService
from tradetrack.services.aggregated import AggregatedActivityLog
from tradetrack.services.chain import ChainVerifier
from tradetrack.services.history import (
    EntityHistoryLog,
    contract_history,
    document_history,
    kyc_history,
)
from tradetrack.services.notifications import (
    NotificationBroadcaster,
    NotificationFanout,
    NotificationSink,
)
from tradetrack.services.records import DOCUMENT_RECORDS, KYC_RECORDS, EntityRecords
from tradetrack.services.roles import RoleResolver
from tradetrack.services.store import RecordStore
from tradetrack.services.tracking import ActivityTracker


@dataclass
class Services:
    store: RecordStore
    activity: ActivityLogService
    aggregated: AggregatedActivityLog
    contract_log: EntityHistoryLog
    document_log: EntityHistoryLog
    kyc_log: EntityHistoryLog
    roles: RoleResolver
    broadcaster: NotificationBroadcaster
    notifications: NotificationSink
    fanout: NotificationFanout
    tracker: ActivityTracker
    chain: Optional[ChainVerifier] = None


def build_services(
    store: RecordStore,
    admin_addresses: Iterable[str],
    chain_verifier: Optional[ChainVerifier] = None,
) -> Services:
    activity = ActivityLogService(store)
    aggregated = AggregatedActivityLog(store)
    contracts = contract_history(store)
    documents = document_history(store)
    kycs = kyc_history(store)
    roles = RoleResolver(contracts)

    broadcaster = NotificationBroadcaster()
    sink = NotificationSink(store, broadcaster)
    fanout = NotificationFanout(sink, admin_addresses)

    tracker = ActivityTracker(
        activity=activity,
        aggregated=aggregated,
        contract_log=contracts,
        document_log=documents,
        kyc_log=kycs,
        kyc_records=EntityRecords(store, KYC_RECORDS),
        document_records=EntityRecords(store, DOCUMENT_RECORDS),
        roles=roles,
        fanout=fanout,
    )

    return Services(
        store=store,
        activity=activity,
        aggregated=aggregated,
        contract_log=contracts,
        document_log=documents,
        kyc_log=kycs,
        roles=roles,
        broadcaster=broadcaster,
        notifications=sink,
        fanout=fanout,
        tracker=tracker,
        chain=chain_verifier,
    )
