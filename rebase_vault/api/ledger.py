"""
Ledger endpoints: rate policy, balance queries and transfers
"""

from fastapi import APIRouter, Depends

from .dependencies import VaultSystem, get_vault_system, to_http_exception
from .schemas import (
    AccountResponse, ApproveRequest, SetRateRequest,
    TransferFromRequest, TransferRequest
)
from ..errors import VaultError


router = APIRouter()


@router.get("")
async def get_ledger(system: VaultSystem = Depends(get_vault_system)):
    """Get token metadata, current rate and realized supply"""
    ledger = system.ledger
    return {
        "address": ledger.address,
        "name": ledger.name,
        "symbol": ledger.symbol,
        "decimals": ledger.decimals,
        "precision_factor": str(ledger.precision_factor),
        "current_rate": str(ledger.current_rate()),
        "total_supply": str(ledger.total_supply())
    }


@router.put("/rate")
async def set_interest_rate(
    request: SetRateRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Lower the global interest rate"""
    try:
        new_rate = system.ledger.set_interest_rate(int(request.new_rate))
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"current_rate": str(new_rate)}


@router.get("/accounts/{address}", response_model=AccountResponse)
async def get_account(
    address: str,
    system: VaultSystem = Depends(get_vault_system)
):
    """Get accrued-inclusive and realized balances for an account"""
    try:
        record = system.ledger.get_account(address)
        balance = system.ledger.balance_of(record.address)
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)

    return AccountResponse(
        address=record.address,
        balance=str(balance),
        principal=str(record.principal),
        locked_rate=str(record.locked_rate),
        last_settled=record.last_settled,
        reference_asset_balance=str(system.custodian.balance_of(record.address))
    )


@router.post("/accounts/{address}/settle")
async def settle_account(
    address: str,
    system: VaultSystem = Depends(get_vault_system)
):
    """Realize an account's accrued interest"""
    try:
        interest = system.ledger.settle(address)
        principal = system.ledger.principal_of(address)
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"settled_interest": str(interest), "principal": str(principal)}


@router.post("/transfer")
async def transfer(
    request: TransferRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Transfer balance between accounts"""
    try:
        amount = system.ledger.transfer(request.sender, request.recipient, request.to_amount())
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"amount": str(amount)}


@router.post("/approve")
async def approve(
    request: ApproveRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Set a spending allowance"""
    try:
        amount = system.ledger.approve(request.owner, request.spender, request.to_amount())
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"allowance": str(amount)}


@router.post("/transfer-from")
async def transfer_from(
    request: TransferFromRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Transfer on behalf of an owner using an allowance"""
    try:
        amount = system.ledger.transfer_from(
            request.spender, request.owner, request.recipient, request.to_amount()
        )
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"amount": str(amount)}


@router.get("/allowances/{owner}/{spender}")
async def get_allowance(
    owner: str,
    spender: str,
    system: VaultSystem = Depends(get_vault_system)
):
    """Get the remaining allowance of spender over owner's balance"""
    try:
        amount = system.ledger.allowance(owner, spender)
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"allowance": str(amount)}
