"""
TradeTrack — KYC API routes.
"""

from fastapi import APIRouter, Depends

from tradetrack.routes import get_services, ok
from tradetrack.schemas import KycActionRequest, KycCreateRequest
from tradetrack.services.container import Services

router = APIRouter(prefix="/kyc", tags=["kyc"])


@router.post("", status_code=201)
async def create_kyc(req: KycCreateRequest, services: Services = Depends(get_services)):
    return ok(await services.tracker.create_kyc(req.payload()))


@router.get("/owner/{owner}")
async def kycs_by_owner(owner: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.kycs_by_owner(owner))


@router.get("/{token_id}")
async def get_kyc(token_id: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.get_kyc(token_id))


@router.put("/{token_id}")
async def update_kyc(
    token_id: str, req: KycActionRequest, services: Services = Depends(get_services),
):
    return ok(await services.tracker.update_kyc(token_id, req.payload()))


@router.delete("/{token_id}")
async def delete_kyc(
    token_id: str, req: KycActionRequest, services: Services = Depends(get_services),
):
    await services.tracker.delete_kyc(token_id, req.payload())
    return ok(message="KYC deleted successfully")


@router.get("/{token_id}/logs")
async def kyc_logs(token_id: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.kyc_history(token_id))
