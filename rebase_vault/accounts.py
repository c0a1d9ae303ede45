"""
Account Records Module

Account addresses and the per-account accrual record. A record is created
lazily (all fields zero) the first time an account is referenced and is
never deleted; a zero balance is a normal steady state.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict

from .errors import InvalidAddress


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str, allow_zero: bool = False) -> str:
    """
    Validate and normalize an account address

    Args:
        address: 0x-prefixed, 20-byte hex address
        allow_zero: Whether the zero address is acceptable

    Returns:
        Lower-cased address
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        raise InvalidAddress(f"Invalid account address: {address!r}")

    normalized = address.lower()
    if normalized == ZERO_ADDRESS and not allow_zero:
        raise InvalidAddress("The zero address cannot take part in ledger operations")
    return normalized


@dataclass
class AccountRecord:
    """
    Per-account accrual state

    principal: realized balance, changed only by settlement, mint, burn and transfer
    locked_rate: rate snapshot taken when the account became a holder
    last_settled: clock reading of the last settlement (0 = never settled)
    """
    address: str
    principal: int = 0
    locked_rate: int = 0
    last_settled: int = 0

    @property
    def is_holder(self) -> bool:
        return self.principal > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage (integers as decimal strings)"""
        return {
            "address": self.address,
            "principal": str(self.principal),
            "locked_rate": str(self.locked_rate),
            "last_settled": str(self.last_settled),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountRecord':
        """Create instance from stored dictionary"""
        return cls(
            address=data["address"],
            principal=int(data["principal"]),
            locked_rate=int(data["locked_rate"]),
            last_settled=int(data["last_settled"]),
        )
