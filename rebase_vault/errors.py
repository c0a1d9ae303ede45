"""
Error taxonomy for ledger and vault operations.

Every error is raised synchronously from inside a unit of work, so the
storage transaction is rolled back before the caller sees it.
"""


class VaultError(Exception):
    """Base exception for all ledger and vault errors"""
    pass


class RateIncreaseRejected(VaultError):
    """Raised when a new global interest rate is higher than the current one"""

    def __init__(self, old_rate: int, attempted_rate: int):
        self.old_rate = old_rate
        self.attempted_rate = attempted_rate
        super().__init__(
            f"Interest rate can only decrease: current={old_rate}, attempted={attempted_rate}"
        )


class InsufficientBalance(VaultError):
    """Raised when a burn or transfer would drive a settled balance negative"""

    def __init__(self, account: str, requested: int, available: int):
        self.account = account
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance for {account}: requested={requested}, available={available}"
        )


class InsufficientAllowance(VaultError):
    """Raised when transferFrom exceeds the spender's allowance"""

    def __init__(self, owner: str, spender: str, requested: int, available: int):
        self.owner = owner
        self.spender = spender
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient allowance for {spender} on {owner}: "
            f"requested={requested}, available={available}"
        )


class ArithmeticOverflow(VaultError):
    """Raised when a value leaves the unsigned 256-bit range"""
    pass


class RedeemFailed(VaultError):
    """Raised when the custodian could not release the reference asset"""

    def __init__(self, account: str, amount: int):
        self.account = account
        self.amount = amount
        super().__init__(f"Failed to release {amount} of the reference asset to {account}")


class DepositFailed(VaultError):
    """Raised when the custodian could not collect the reference asset"""

    def __init__(self, account: str, amount: int):
        self.account = account
        self.amount = amount
        super().__init__(f"Failed to collect {amount} of the reference asset from {account}")


class InvalidAddress(VaultError, ValueError):
    """Raised for malformed or forbidden account addresses"""
    pass
