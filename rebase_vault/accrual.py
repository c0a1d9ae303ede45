"""
Interest Accrual Module

Pure arithmetic for linear (non-compounding within a settlement interval)
interest. A balance grows as

    balance = principal * (P + locked_rate * elapsed) // P

where P is the precision factor and elapsed is the number of seconds since
the account was last settled. The multiplier starts at exactly P (no growth)
and increases linearly with time. Nothing here reads or writes storage.
"""

from typing import Optional

from .errors import ArithmeticOverflow
from .numeric import UINT256_MAX


def elapsed_since(last_settled: int, now: int) -> int:
    """
    Seconds of accrual since the last settlement

    A never-settled account (last_settled == 0) has accrued nothing.
    """
    if last_settled == 0:
        return 0
    if now < last_settled:
        raise ValueError(f"Clock reading {now} is earlier than last settlement {last_settled}")
    return now - last_settled


def interest_multiplier(locked_rate: int, elapsed: int, precision_factor: int) -> int:
    """Growth multiplier scaled by precision_factor (precision_factor means 1.0)"""
    return precision_factor + locked_rate * elapsed


def accrued_balance(
    principal: int,
    locked_rate: int,
    last_settled: int,
    now: int,
    precision_factor: int
) -> int:
    """
    Accrued-inclusive balance of an account at time `now`

    Intermediate products are exact; only the resulting balance has to fit
    in uint256.

    Raises:
        ArithmeticOverflow: if the balance is not representable
    """
    if principal == 0:
        return 0

    elapsed = elapsed_since(last_settled, now)
    multiplier = interest_multiplier(locked_rate, elapsed, precision_factor)
    balance = principal * multiplier // precision_factor

    if balance > UINT256_MAX:
        raise ArithmeticOverflow(
            f"Accrued balance exceeds uint256 (principal={principal}, "
            f"rate={locked_rate}, elapsed={elapsed})"
        )
    return balance


def accrued_interest(
    principal: int,
    locked_rate: int,
    last_settled: int,
    now: int,
    precision_factor: int
) -> int:
    """Interest earned since the last settlement, not yet part of principal"""
    return accrued_balance(principal, locked_rate, last_settled, now, precision_factor) - principal


def max_elapsed_seconds(principal: int, locked_rate: int, precision_factor: int) -> Optional[int]:
    """
    Longest settlement interval for which the balance stays representable

    Returns None when the balance can never overflow (no principal or a zero
    rate). With the default P = 1e18 and rate = 5e10/s, a principal of 1e30
    can go unsettled for roughly 2e54 seconds.
    """
    if principal == 0 or locked_rate == 0:
        return None

    max_multiplier = ((UINT256_MAX + 1) * precision_factor - 1) // principal
    return (max_multiplier - precision_factor) // locked_rate
