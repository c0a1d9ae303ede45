"""
Unsigned 256-bit integer domain shared by the ledger and the vault.

Amounts, rates and timestamps are plain Python ints kept inside
[0, UINT256_MAX]. Nothing wraps: leaving the range raises ArithmeticOverflow.
"""

from .errors import ArithmeticOverflow


UINT256_MAX = 2 ** 256 - 1

# Passing this amount to burn/transfer/transfer_from/redeem means
# "the account's entire accrued-inclusive balance".
MAX_AMOUNT = UINT256_MAX

DEFAULT_PRECISION_FACTOR = 10 ** 18


def require_uint(value: int, name: str = "amount") -> int:
    """Validate that value is an int in the uint256 range"""
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value > UINT256_MAX:
        raise ArithmeticOverflow(f"{name} exceeds uint256: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"uint256 overflow in {a} + {b}")
    return result


def is_max_amount(amount: int) -> bool:
    return amount == MAX_AMOUNT
