"""
Custody Gateway Module

The vault front-end: exchanges a reference asset for freshly minted ledger
balance and burns ledger balance to hand the asset back. It never computes
balances itself; the AccrualLedger is the only source of truth for what an
account is owed. Movement of the reference asset is delegated to an
AssetCustodian collaborator.
"""

from abc import ABC, abstractmethod

from .accounts import normalize_address
from .audit import AuditEventType
from .errors import DepositFailed, RedeemFailed
from .events import LedgerEvent
from .ledger import AccrualLedger
from .logging_config import get_logger, log_action
from .numeric import checked_add, require_uint
from .storage import StorageInterface


logger = get_logger("rebase_vault.gateway")


class AssetCustodian(ABC):
    """Moves the reference asset between depositors and the vault reserve"""

    @abstractmethod
    def collect(self, owner: str, amount: int) -> bool:
        """Pull amount from owner into the vault reserve; False if it could not"""
        pass

    @abstractmethod
    def release(self, owner: str, amount: int) -> bool:
        """Pay amount out of the vault reserve to owner; False if it could not"""
        pass

    @abstractmethod
    def receive(self, sender: str, amount: int) -> bool:
        """Accept amount into the reserve without any ledger entitlement"""
        pass

    @abstractmethod
    def balance_of(self, owner: str) -> int:
        """Reference asset held by owner outside the vault"""
        pass

    @abstractmethod
    def reserve(self) -> int:
        """Reference asset held by the vault"""
        pass


class ReserveCustodian(AssetCustodian):
    """
    Custodian that books reference-asset balances in the ledger's storage

    Sharing the storage backend puts asset movements in the same unit of
    work as the ledger mint/burn, so a failed redemption rolls both back.
    Every write runs in a storage transaction, so a custodian call from
    another thread waits for an open ledger unit instead of joining it.
    """

    RESERVE_ID = "__vault_reserve__"

    def __init__(self, storage: StorageInterface, table_name: str = "reference_asset_balances"):
        self.storage = storage
        self.table_name = table_name

    def _get(self, holder: str) -> int:
        data = self.storage.load(self.table_name, holder)
        return int(data["amount"]) if data else 0

    def _put(self, holder: str, amount: int) -> None:
        self.storage.save(self.table_name, holder, {"holder": holder, "amount": str(amount)})

    def credit(self, owner: str, amount: int) -> int:
        """Give owner reference asset from outside the system (on-ramp)"""
        owner = normalize_address(owner)
        require_uint(amount)
        with self.storage.atomic():
            balance = checked_add(self._get(owner), amount)
            self._put(owner, balance)
        log_action(logger, "info", "Credited reference asset", account=owner,
                   action="credit", extra={"amount": str(amount), "balance": str(balance)})
        return balance

    def _move(self, source: str, dest: str, amount: int) -> bool:
        with self.storage.atomic():
            available = self._get(source)
            if available < amount:
                return False
            self._put(source, available - amount)
            self._put(dest, checked_add(self._get(dest), amount))
            return True

    def collect(self, owner: str, amount: int) -> bool:
        return self._move(normalize_address(owner), self.RESERVE_ID, amount)

    def release(self, owner: str, amount: int) -> bool:
        return self._move(self.RESERVE_ID, normalize_address(owner), amount)

    def receive(self, sender: str, amount: int) -> bool:
        return self._move(normalize_address(sender), self.RESERVE_ID, amount)

    def balance_of(self, owner: str) -> int:
        return self._get(normalize_address(owner, allow_zero=True))

    def reserve(self) -> int:
        return self._get(self.RESERVE_ID)


class CustodyGateway:
    """
    Vault that mints ledger balance 1:1 for deposited reference asset
    and returns the asset when ledger balance is burned
    """

    def __init__(self, ledger: AccrualLedger, custodian: AssetCustodian):
        self._ledger = ledger
        self._custodian = custodian

    @property
    def ledger(self) -> AccrualLedger:
        """Ledger instance this gateway is bound to"""
        return self._ledger

    @property
    def ledger_address(self) -> str:
        return self._ledger.address

    @property
    def custodian(self) -> AssetCustodian:
        return self._custodian

    def reserve(self) -> int:
        """Reference asset currently held by the vault"""
        return self._custodian.reserve()

    def deposit(self, caller: str, amount: int) -> int:
        """
        Deposit reference asset and receive the same amount of ledger balance

        Raises:
            DepositFailed: if the custodian cannot collect the asset
        """
        caller = normalize_address(caller)
        require_uint(amount)

        with self._ledger.unit_of_work():
            minted = self._ledger.mint(caller, amount)

            if not self._custodian.collect(caller, amount):
                log_action(logger, "warning", "Deposit collection failed", account=caller,
                           action="deposit", extra={"amount": str(amount)})
                raise DepositFailed(caller, amount)

            self._ledger.audit(AuditEventType.DEPOSIT, "vault", self.ledger_address,
                               {"account": caller, "amount": minted})
            self._ledger.emit(LedgerEvent.DEPOSITED, "vault", self.ledger_address,
                              {"account": caller, "amount": str(minted)})

        log_action(logger, "info", "Deposit", account=caller, action="deposit",
                   extra={"amount": str(minted)})
        return minted

    def redeem(self, caller: str, amount: int) -> int:
        """
        Burn ledger balance and receive the same amount of reference asset

        MAX_AMOUNT redeems the caller's entire accrued-inclusive balance.

        Returns:
            Amount redeemed

        Raises:
            InsufficientBalance: if the caller does not hold enough
            RedeemFailed: if the custodian cannot release the asset
        """
        caller = normalize_address(caller)
        require_uint(amount)

        with self._ledger.unit_of_work():
            burned = self._ledger.burn(caller, amount)

            if not self._custodian.release(caller, burned):
                log_action(logger, "error", "Redemption release failed", account=caller,
                           action="redeem",
                           extra={"amount": str(burned), "reserve": str(self._custodian.reserve())})
                raise RedeemFailed(caller, burned)

            self._ledger.audit(AuditEventType.REDEMPTION, "vault", self.ledger_address,
                               {"account": caller, "amount": burned})
            self._ledger.emit(LedgerEvent.REDEEMED, "vault", self.ledger_address,
                              {"account": caller, "amount": str(burned)})

        log_action(logger, "info", "Redemption", account=caller, action="redeem",
                   extra={"amount": str(burned)})
        return burned

    # Same operation under the name used by withdrawal-style callers
    withdraw = redeem

    def fund_rewards(self, sender: str, amount: int) -> int:
        """Add reference asset to the reserve to back accrued interest"""
        sender = normalize_address(sender)
        require_uint(amount)

        with self._ledger.unit_of_work():
            if not self._custodian.receive(sender, amount):
                raise DepositFailed(sender, amount)

            self._ledger.audit(AuditEventType.REWARDS_FUNDED, "vault", self.ledger_address,
                               {"account": sender, "amount": amount})
            self._ledger.emit(LedgerEvent.REWARDS_FUNDED, "vault", self.ledger_address,
                              {"account": sender, "amount": str(amount)})

        log_action(logger, "info", "Rewards funded", account=sender, action="fund_rewards",
                   extra={"amount": str(amount)})
        return amount
