"""
TradeTrack — Trade document API routes.
"""

from fastapi import APIRouter, Depends

from tradetrack.routes import get_services, ok
from tradetrack.schemas import DocumentActionRequest, DocumentAttachRequest
from tradetrack.services.container import Services

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/contract/{addr}", status_code=201)
async def attach_document(
    addr: str, req: DocumentAttachRequest, services: Services = Depends(get_services),
):
    """Register a document and link it to the contract at ``addr``."""
    return ok(await services.tracker.attach_document(addr, req.payload()))


@router.get("/owner/{owner}")
async def documents_by_owner(owner: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.documents_by_owner(owner))


@router.get("/contract/{addr}")
async def documents_by_contract(addr: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.documents_by_contract(addr))


@router.get("/{token_id}")
async def get_document(token_id: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.get_document(token_id))


@router.patch("/{token_id}")
async def update_document(
    token_id: str, req: DocumentActionRequest, services: Services = Depends(get_services),
):
    return ok(await services.tracker.update_document(token_id, req.payload()))


@router.delete("/{token_id}")
async def delete_document(
    token_id: str, req: DocumentActionRequest, services: Services = Depends(get_services),
):
    await services.tracker.delete_document(token_id, req.payload())
    return ok(message="Deleted successfully")


@router.get("/{token_id}/logs")
async def document_logs(token_id: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.document_history(token_id))
