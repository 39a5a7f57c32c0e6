"""
TradeTrack — Trade contract API routes.
"""

import logging

from fastapi import APIRouter, Depends

from tradetrack.routes import dump, get_services, ok
from tradetrack.schemas import ContractLogRequest
from tradetrack.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("")
async def list_contracts(services: Services = Depends(get_services)):
    """Addresses of every contract with a history."""
    return ok(contracts=await services.tracker.contract_keys())


@router.post("/log", status_code=201)
async def log_contract_action(req: ContractLogRequest, services: Services = Depends(get_services)):
    """
    Append one action to a contract's history.

    With ``verifyOnChain`` the transaction receipt is looked up first; a
    failed lookup only means the entry carries no ``onChainInfo``.
    """
    payload = req.payload()
    verify = payload.pop("verifyOnChain", False)

    on_chain_info = None
    if verify and services.chain and payload.get("txHash"):
        on_chain_info = await services.chain.verify(payload["txHash"])

    contract, entry = await services.tracker.record_contract_action(payload, on_chain_info)
    return ok(log=entry.to_doc(), contractAddress=contract)


@router.get("/user/{address}")
async def user_contracts(address: str, services: Services = Depends(get_services)):
    """Contracts where the address is importer or exporter."""
    return ok(await services.tracker.contracts_for_user(address))


@router.get("/{address}/details")
async def contract_details(address: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.contract_details(address))


@router.get("/{address}/history")
async def contract_history(address: str, services: Services = Depends(get_services)):
    return ok(dump(await services.tracker.contract_history(address)))


@router.get("/{address}/step")
async def contract_step(address: str, services: Services = Depends(get_services)):
    return ok(await services.tracker.contract_step_status(address))


@router.get("/{address}/roles")
async def contract_roles(address: str, services: Services = Depends(get_services)):
    roles = await services.roles.get_roles(address)
    return ok(roles.to_dict())
