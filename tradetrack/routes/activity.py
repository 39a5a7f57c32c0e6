"""
TradeTrack — Activity log API routes.

``/activity`` is the per-account log; ``/aggregated`` is the flat,
case-insensitive, taggable index of the same events.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tradetrack.errors import TradeTrackError, ValidationError
from tradetrack.routes import dump, get_services, ok
from tradetrack.schemas import ActivityCreateRequest, TagRequest
from tradetrack.services.container import Services

logger = logging.getLogger(__name__)

activity_router = APIRouter(prefix="/activity", tags=["activity"])
aggregated_router = APIRouter(prefix="/aggregated", tags=["aggregated"])


def _split_tags(payload: dict) -> list[str]:
    tags = payload.pop("tags", None) or []
    for tag in tags:
        if not tag or not tag.strip():
            raise ValidationError("tags", "tags must not contain blank values")
    return tags


async def _apply_tags(services: Services, entry_id: str, tags: list[str]) -> list[str]:
    for tag in tags:
        await services.aggregated.add_tag(entry_id, tag)
    return tags


# ═══════════════════════════════════════════════════════
#  /activity
# ═══════════════════════════════════════════════════════

@activity_router.post("", status_code=201)
async def create_activity(req: ActivityCreateRequest, services: Services = Depends(get_services)):
    """
    Log an activity for an account and index it in the aggregated log.

    The aggregated copy is best effort; ``tags`` are applied to it.
    """
    payload = req.payload()
    tags = _split_tags(payload)

    entry = await services.activity.add(payload)

    aggregated_id = None
    try:
        aggregated = await services.aggregated.add(entry.to_doc())
        aggregated_id = aggregated.id
        await _apply_tags(services, aggregated_id, tags)
    except TradeTrackError as e:
        logger.warning(f"⚠️  Aggregated index write for {entry.account} failed: {e}")

    return ok(entry.to_doc(), aggregatedId=aggregated_id, tags=tags)


@activity_router.get("")
async def list_activities(
    account: Optional[str] = Query(None),
    tx_hash: Optional[str] = Query(None, alias="txHash"),
    contract_address: Optional[str] = Query(None, alias="contractAddress"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    start_after: Optional[int] = Query(None, alias="startAfterTimestamp"),
    services: Services = Depends(get_services),
):
    entries = await services.activity.list_all(
        account=account,
        tx_hash=tx_hash,
        contract_address=contract_address,
        limit=limit,
        start_after_timestamp=start_after,
    )
    return ok(dump(entries))


@activity_router.get("/{account}")
async def list_account_activity(
    account: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    start_after: Optional[int] = Query(None, alias="startAfterTimestamp"),
    services: Services = Depends(get_services),
):
    entries = await services.activity.list_by_account(account, limit, start_after)
    next_cursor = entries[-1].timestamp if entries and limit and len(entries) == limit else None
    return ok(dump(entries), nextCursor=next_cursor)


# ═══════════════════════════════════════════════════════
#  /aggregated
# ═══════════════════════════════════════════════════════

@aggregated_router.post("", status_code=201)
async def create_aggregated(req: ActivityCreateRequest, services: Services = Depends(get_services)):
    payload = req.payload()
    tags = _split_tags(payload)
    entry = await services.aggregated.add(payload)
    await _apply_tags(services, entry.id, tags)
    if tags:
        entry = await services.aggregated.require(entry.id)
    return ok(entry.to_doc())


@aggregated_router.get("")
async def list_aggregated(
    account: Optional[str] = Query(None),
    tx_hash: Optional[str] = Query(None, alias="txHash"),
    contract_address: Optional[str] = Query(None, alias="contractAddress"),
    tags: Optional[str] = Query(None, description="Comma-separated; filtering by tag is left to the client"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    start_after: Optional[int] = Query(None, alias="startAfterTimestamp"),
    services: Services = Depends(get_services),
):
    entries = await services.aggregated.query(
        account=account,
        tx_hash=tx_hash,
        contract_address=contract_address,
        tags=[t.strip() for t in tags.split(",") if t.strip()] if tags else None,
        limit=limit,
        start_after_timestamp=start_after,
    )
    return ok(dump(entries))


@aggregated_router.get("/{entry_id}")
async def get_aggregated(entry_id: str, services: Services = Depends(get_services)):
    entry = await services.aggregated.require(entry_id)
    return ok(entry.to_doc())


@aggregated_router.post("/{entry_id}/tag")
async def add_aggregated_tag(
    entry_id: str, req: TagRequest, services: Services = Depends(get_services),
):
    await services.aggregated.add_tag(entry_id, req.tag)
    return ok(message=f"Tag '{req.tag}' added")


@aggregated_router.delete("/{entry_id}/tag")
async def remove_aggregated_tag(
    entry_id: str, tag: str = Query(...), services: Services = Depends(get_services),
):
    await services.aggregated.remove_tag(entry_id, tag)
    return ok(message=f"Tag '{tag}' removed")
