"""
Pydantic schemas for API requests and responses
"""

from typing import Optional
from pydantic import BaseModel, Field

from ..numeric import MAX_AMOUNT


AMOUNT_PATTERN = r"^(max|[0-9]+)$"
UINT_PATTERN = r"^[0-9]+$"


def parse_amount(value: str) -> int:
    """Decimal string to int; "max" is the entire-balance sentinel"""
    if value == "max":
        return MAX_AMOUNT
    return int(value)


class AmountModel(BaseModel):
    amount: str = Field(..., pattern=AMOUNT_PATTERN,
                        description='Integer amount as decimal string, or "max" for the entire balance')

    def to_amount(self) -> int:
        return parse_amount(self.amount)


# Ledger schemas
class SetRateRequest(BaseModel):
    new_rate: str = Field(..., pattern=UINT_PATTERN, description="Rate per second scaled by the precision factor")


class TransferRequest(AmountModel):
    sender: str
    recipient: str


class ApproveRequest(AmountModel):
    owner: str
    spender: str


class TransferFromRequest(AmountModel):
    spender: str
    owner: str
    recipient: str


# Vault schemas
class VaultRequest(AmountModel):
    account: str


class RewardsRequest(AmountModel):
    sender: str


class CreditRequest(BaseModel):
    account: str
    amount: str = Field(..., pattern=UINT_PATTERN, description="Reference asset to give the account")


class AccountResponse(BaseModel):
    address: str
    balance: str
    principal: str
    locked_rate: str
    last_settled: int
    reference_asset_balance: Optional[str] = None
