"""
Vault endpoints: deposits, redemptions, reserve funding and the reference asset on-ramp
"""

from fastapi import APIRouter, Depends

from .dependencies import VaultSystem, get_vault_system, to_http_exception
from .schemas import CreditRequest, RewardsRequest, VaultRequest
from ..accounts import normalize_address
from ..errors import VaultError


router = APIRouter()


@router.get("")
async def get_vault(system: VaultSystem = Depends(get_vault_system)):
    """Get the bound ledger and the reference asset reserve"""
    return {
        "ledger_address": system.gateway.ledger_address,
        "reserve": str(system.gateway.reserve()),
        "total_supply": str(system.ledger.total_supply())
    }


@router.post("/deposit")
async def deposit(
    request: VaultRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Deposit reference asset and mint ledger balance"""
    try:
        minted = system.gateway.deposit(request.account, request.to_amount())
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"minted": str(minted), "balance": str(system.ledger.balance_of(request.account))}


@router.post("/redeem")
async def redeem(
    request: VaultRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Burn ledger balance and release reference asset"""
    try:
        redeemed = system.gateway.redeem(request.account, request.to_amount())
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"redeemed": str(redeemed), "balance": str(system.ledger.balance_of(request.account))}


@router.post("/rewards")
async def fund_rewards(
    request: RewardsRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Send reference asset into the reserve to back accrued interest"""
    try:
        funded = system.gateway.fund_rewards(request.sender, request.to_amount())
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"funded": str(funded), "reserve": str(system.gateway.reserve())}


@router.post("/asset/credit")
async def credit_asset(
    request: CreditRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Give an account reference asset from outside the vault (on-ramp)"""
    try:
        balance = system.custodian.credit(request.account, int(request.amount))
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"account": normalize_address(request.account), "balance": str(balance)}


@router.get("/asset/{address}")
async def get_asset_balance(
    address: str,
    system: VaultSystem = Depends(get_vault_system)
):
    """Get an account's reference asset held outside the vault"""
    try:
        balance = system.custodian.balance_of(address)
    except (VaultError, ValueError) as e:
        raise to_http_exception(e)
    return {"account": normalize_address(address, allow_zero=True), "balance": str(balance)}
