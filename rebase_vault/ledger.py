"""
Accrual Ledger Engine

System of record for the interest-bearing token. Each account keeps a
realized principal, a locked-in rate and the time it was last settled;
its redeemable balance grows linearly from there and is computed on demand.

Every balance-affecting operation settles the accounts it touches first,
folding accrued-but-unrealized interest into principal, and runs as one
atomic unit of work: it either fully applies or leaves no trace.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .accounts import AccountRecord, normalize_address
from .accrual import accrued_balance, accrued_interest
from .audit import AuditTrail, AuditEventType
from .clock import Clock
from .config import get_config
from .errors import InsufficientAllowance, InsufficientBalance, RateIncreaseRejected
from .events import EventDispatcher, EventPayload, LedgerEvent, get_global_dispatcher
from .logging_config import get_logger, log_action
from .numeric import checked_add, is_max_amount, require_uint
from .storage import StorageInterface


logger = get_logger("rebase_vault.ledger")


class AccrualLedger:
    """
    Interest-accruing token ledger

    The global rate only ever decreases. An account's rate is locked when it
    becomes a holder and is unaffected by later global changes.
    """

    ACCOUNTS_TABLE = "ledger_accounts"
    ALLOWANCES_TABLE = "ledger_allowances"
    STATE_TABLE = "ledger_state"
    STATE_ID = "global"

    def __init__(
        self,
        storage: StorageInterface,
        clock: Clock,
        event_dispatcher: Optional[EventDispatcher] = None,
        audit_trail: Optional[AuditTrail] = None,
        precision_factor: Optional[int] = None,
        initial_interest_rate: Optional[int] = None,
        name: Optional[str] = None,
        symbol: Optional[str] = None,
        decimals: Optional[int] = None,
        address: Optional[str] = None
    ):
        config = get_config()

        self.storage = storage
        self.clock = clock
        self.event_dispatcher = event_dispatcher or get_global_dispatcher()
        self.audit_trail = audit_trail

        self.precision_factor = precision_factor if precision_factor is not None else config.precision_factor
        if self.precision_factor <= 0:
            raise ValueError("Precision factor must be positive")

        self.name = name or config.token_name
        self.symbol = symbol or config.token_symbol
        self.decimals = decimals if decimals is not None else config.token_decimals
        self.address = normalize_address(address or "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8])

        self._lock = threading.RLock()
        self._unit_depth = 0
        self._unit_time = 0
        self._pending_events: List[EventPayload] = []

        rate = initial_interest_rate if initial_interest_rate is not None else config.initial_interest_rate
        self._initialize_state(require_uint(rate, "initial interest rate"))

    def _initialize_state(self, initial_rate: int) -> None:
        """Create the global state record unless the backend already has one"""
        with self.storage.atomic():
            if self.storage.load(self.STATE_TABLE, self.STATE_ID) is None:
                self._save_state({"current_rate": initial_rate, "total_supply": 0})

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self):
        """
        Serialize an operation and make it all-or-nothing

        Nested units join the outermost one. The clock is read once per
        outermost unit, and events raised inside are published only after
        it commits.
        """
        with self._lock:
            outermost = self._unit_depth == 0
            if outermost:
                self._pending_events = []
                self._unit_time = self._read_clock()
            self._unit_depth += 1
            try:
                with self.storage.atomic():
                    yield
            except BaseException:
                if outermost:
                    self._pending_events = []
                raise
            finally:
                self._unit_depth -= 1

            if outermost:
                events, self._pending_events = self._pending_events, []
                for event in events:
                    self.event_dispatcher.publish(event)

    def _read_clock(self) -> int:
        # 0 is the "never settled" marker in account records
        now = self.clock.now()
        if now <= 0:
            raise ValueError(f"Clock reading must be positive, got {now}")
        return now

    def _now(self) -> int:
        if self._unit_depth > 0:
            return self._unit_time
        return self._read_clock()

    def emit(self, event_type: LedgerEvent, entity_type: str, entity_id: str, data: Dict[str, Any]) -> None:
        """Queue an event for publication when the current unit of work commits"""
        payload = EventPayload(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            data=data,
            ledger_time=self._now()
        )
        if self._unit_depth > 0:
            self._pending_events.append(payload)
        else:
            self.event_dispatcher.publish(payload)

    def audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
              metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record a mutation in the audit trail, if one is attached"""
        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                ledger_time=self._now(),
                metadata=metadata
            )

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    def _load_state(self) -> Dict[str, int]:
        data = self.storage.load(self.STATE_TABLE, self.STATE_ID)
        return {
            "current_rate": int(data["current_rate"]),
            "total_supply": int(data["total_supply"]),
        }

    def _save_state(self, state: Dict[str, int]) -> None:
        self.storage.save(self.STATE_TABLE, self.STATE_ID, {
            "current_rate": str(state["current_rate"]),
            "total_supply": str(state["total_supply"]),
        })

    def _load_account(self, address: str) -> AccountRecord:
        data = self.storage.load(self.ACCOUNTS_TABLE, address)
        if data is None:
            return AccountRecord(address=address)
        return AccountRecord.from_dict(data)

    def _save_account(self, record: AccountRecord) -> None:
        self.storage.save(self.ACCOUNTS_TABLE, record.address, record.to_dict())

    @staticmethod
    def _allowance_key(owner: str, spender: str) -> str:
        return f"{owner}:{spender}"

    def _load_allowance(self, owner: str, spender: str) -> int:
        data = self.storage.load(self.ALLOWANCES_TABLE, self._allowance_key(owner, spender))
        return int(data["amount"]) if data else 0

    def _save_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.storage.save(self.ALLOWANCES_TABLE, self._allowance_key(owner, spender), {
            "owner": owner,
            "spender": spender,
            "amount": str(amount),
        })

    def _accrued_balance(self, record: AccountRecord, now: int) -> int:
        return accrued_balance(
            record.principal,
            record.locked_rate,
            record.last_settled,
            now,
            self.precision_factor
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_rate(self) -> int:
        """Rate applied to new rate assignments"""
        with self._lock:
            return self._load_state()["current_rate"]

    def total_supply(self) -> int:
        """Sum of realized principals (unsettled interest excluded)"""
        with self._lock:
            return self._load_state()["total_supply"]

    def balance_of(self, account: str) -> int:
        """
        Accrued-inclusive balance: principal plus interest since last settlement

        Pure read; never mutates state.
        """
        address = normalize_address(account, allow_zero=True)
        with self._lock:
            return self._accrued_balance(self._load_account(address), self._now())

    def principal_of(self, account: str) -> int:
        """Realized balance with no accrual applied"""
        address = normalize_address(account, allow_zero=True)
        with self._lock:
            return self._load_account(address).principal

    def rate_of(self, account: str) -> int:
        """Rate locked in for an account"""
        address = normalize_address(account, allow_zero=True)
        with self._lock:
            return self._load_account(address).locked_rate

    def last_settled_of(self, account: str) -> int:
        """Clock reading of the account's last settlement (0 if never)"""
        address = normalize_address(account, allow_zero=True)
        with self._lock:
            return self._load_account(address).last_settled

    def get_account(self, account: str) -> AccountRecord:
        """Stored record for an account (zero record if never referenced)"""
        address = normalize_address(account, allow_zero=True)
        with self._lock:
            return self._load_account(address)

    def allowance(self, owner: str, spender: str) -> int:
        """Amount spender may still move out of owner's account"""
        owner = normalize_address(owner, allow_zero=True)
        spender = normalize_address(spender, allow_zero=True)
        with self._lock:
            return self._load_allowance(owner, spender)

    # ------------------------------------------------------------------
    # Rate policy
    # ------------------------------------------------------------------

    def set_interest_rate(self, new_rate: int) -> int:
        """
        Lower (or keep) the global interest rate

        Args:
            new_rate: Rate per second, scaled by the precision factor

        Returns:
            The new current rate

        Raises:
            RateIncreaseRejected: if new_rate is above the current rate
        """
        require_uint(new_rate, "interest rate")

        with self.unit_of_work():
            state = self._load_state()
            old_rate = state["current_rate"]

            if new_rate > old_rate:
                log_action(logger, "warning", "Rejected interest rate increase",
                           action="set_interest_rate",
                           extra={"old_rate": str(old_rate), "attempted_rate": str(new_rate)})
                raise RateIncreaseRejected(old_rate, new_rate)

            state["current_rate"] = new_rate
            self._save_state(state)

            self.audit(AuditEventType.INTEREST_RATE_SET, "ledger", self.address,
                       {"old_rate": old_rate, "new_rate": new_rate})
            self.emit(LedgerEvent.INTEREST_RATE_SET, "ledger", self.address,
                      {"old_rate": str(old_rate), "new_rate": str(new_rate)})

        log_action(logger, "info", "Interest rate set", action="set_interest_rate",
                   extra={"old_rate": str(old_rate), "new_rate": str(new_rate)})
        return new_rate

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def settle(self, account: str) -> int:
        """
        Realize an account's accrued interest

        Returns:
            Interest folded into principal (0 when called twice at the same time)
        """
        address = normalize_address(account)
        with self.unit_of_work():
            before = self._load_account(address).principal
            record = self._settle(address)
            return record.principal - before

    def _settle(self, address: str) -> AccountRecord:
        """
        Fold accrued interest into principal and restart the accrual clock

        Equivalent to minting exactly the accrued delta. Must run before any
        change to the account's principal or rate.
        """
        now = self._now()
        record = self._load_account(address)

        interest = accrued_interest(record.principal, record.locked_rate, record.last_settled,
                                    now, self.precision_factor)
        balance = record.principal + interest

        if interest > 0:
            state = self._load_state()
            state["total_supply"] = checked_add(state["total_supply"], interest)
            self._save_state(state)

            self.audit(AuditEventType.INTEREST_SETTLED, "account", address,
                       {"interest": interest, "principal": balance, "locked_rate": record.locked_rate})
            self.emit(LedgerEvent.INTEREST_SETTLED, "account", address,
                      {"account": address, "amount": str(interest)})
            logger.debug(f"Settled {interest} interest for {address}")

        record.principal = balance
        record.last_settled = now
        self._save_account(record)
        return record

    def _lock_rate(self, record: AccountRecord, rate: int, reason: str) -> None:
        record.locked_rate = rate
        self.audit(AuditEventType.RATE_LOCKED, "account", record.address,
                   {"locked_rate": rate, "reason": reason})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mint(self, to: str, amount: int) -> int:
        """
        Create new balance for an account

        A recipient without settled principal locks in the current global rate.

        Returns:
            Amount minted
        """
        address = normalize_address(to)
        require_uint(amount)

        with self.unit_of_work():
            record = self._settle(address)
            state = self._load_state()

            if not record.is_holder:
                self._lock_rate(record, state["current_rate"], "mint")

            record.principal = checked_add(record.principal, amount)
            state["total_supply"] = checked_add(state["total_supply"], amount)
            self._save_account(record)
            self._save_state(state)

            self.audit(AuditEventType.TOKENS_MINTED, "account", address,
                       {"amount": amount, "principal": record.principal, "locked_rate": record.locked_rate})
            self.emit(LedgerEvent.MINTED, "account", address,
                      {"account": address, "amount": str(amount), "locked_rate": str(record.locked_rate)})

        log_action(logger, "info", "Minted", account=address, action="mint",
                   extra={"amount": str(amount)})
        return amount

    def burn(self, from_account: str, amount: int) -> int:
        """
        Destroy balance from an account

        MAX_AMOUNT burns the account's entire accrued-inclusive balance.

        Returns:
            Amount actually burned

        Raises:
            InsufficientBalance: if amount exceeds the settled balance
        """
        address = normalize_address(from_account)
        require_uint(amount)

        with self.unit_of_work():
            if is_max_amount(amount):
                amount = self._accrued_balance(self._load_account(address), self._now())

            record = self._settle(address)

            if amount > record.principal:
                log_action(logger, "warning", "Rejected burn", account=address, action="burn",
                           extra={"amount": str(amount), "available": str(record.principal)})
                raise InsufficientBalance(address, amount, record.principal)

            state = self._load_state()
            record.principal -= amount
            state["total_supply"] -= amount
            self._save_account(record)
            self._save_state(state)

            self.audit(AuditEventType.TOKENS_BURNED, "account", address,
                       {"amount": amount, "principal": record.principal})
            self.emit(LedgerEvent.BURNED, "account", address,
                      {"account": address, "amount": str(amount)})

        log_action(logger, "info", "Burned", account=address, action="burn",
                   extra={"amount": str(amount)})
        return amount

    def transfer(self, from_account: str, to: str, amount: int) -> int:
        """
        Move balance between accounts

        Both accounts are settled first. A recipient with no settled balance
        adopts the sender's locked rate; an existing holder keeps its own.
        MAX_AMOUNT moves the sender's entire balance.

        Returns:
            Amount actually transferred
        """
        sender = normalize_address(from_account)
        recipient = normalize_address(to)
        require_uint(amount)

        with self.unit_of_work():
            return self._transfer(sender, recipient, amount)

    def _transfer(self, sender: str, recipient: str, amount: int) -> int:
        sender_record = self._settle(sender)
        if recipient == sender:
            recipient_record = sender_record
        else:
            recipient_record = self._settle(recipient)

        if is_max_amount(amount):
            # Settled principal now equals the accrued-inclusive balance
            amount = sender_record.principal

        if amount > sender_record.principal:
            log_action(logger, "warning", "Rejected transfer", account=sender, action="transfer",
                       extra={"amount": str(amount), "available": str(sender_record.principal),
                              "recipient": recipient})
            raise InsufficientBalance(sender, amount, sender_record.principal)

        if recipient != sender:
            if not recipient_record.is_holder:
                self._lock_rate(recipient_record, sender_record.locked_rate, "transfer")

            sender_record.principal -= amount
            recipient_record.principal += amount
            self._save_account(sender_record)
            self._save_account(recipient_record)

        self.audit(AuditEventType.TOKENS_TRANSFERRED, "account", sender,
                   {"recipient": recipient, "amount": amount})
        self.emit(LedgerEvent.TRANSFERRED, "account", sender,
                  {"from": sender, "to": recipient, "amount": str(amount)})
        logger.debug(f"Transferred {amount} from {sender} to {recipient}")
        return amount

    def approve(self, owner: str, spender: str, amount: int) -> int:
        """Set the amount spender may move out of owner's account"""
        owner = normalize_address(owner)
        spender = normalize_address(spender)
        require_uint(amount)

        with self.unit_of_work():
            self._save_allowance(owner, spender, amount)
            self.audit(AuditEventType.ALLOWANCE_SET, "account", owner,
                       {"spender": spender, "amount": amount})
            self.emit(LedgerEvent.APPROVED, "account", owner,
                      {"owner": owner, "spender": spender, "amount": str(amount)})
        return amount

    def transfer_from(self, spender: str, from_account: str, to: str, amount: int) -> int:
        """
        Transfer on behalf of from_account, consuming spender's allowance

        An allowance of MAX_AMOUNT is unlimited and never decremented.

        Raises:
            InsufficientAllowance: if the allowance is below the resolved amount
            InsufficientBalance: if the owner cannot cover the amount
        """
        spender = normalize_address(spender)
        owner = normalize_address(from_account)
        recipient = normalize_address(to)
        require_uint(amount)

        with self.unit_of_work():
            if is_max_amount(amount):
                amount = self._accrued_balance(self._load_account(owner), self._now())

            allowed = self._load_allowance(owner, spender)
            if allowed < amount:
                log_action(logger, "warning", "Rejected transferFrom", account=owner,
                           action="transfer_from",
                           extra={"spender": spender, "amount": str(amount), "allowance": str(allowed)})
                raise InsufficientAllowance(owner, spender, amount, allowed)

            if not is_max_amount(allowed):
                self._save_allowance(owner, spender, allowed - amount)

            return self._transfer(owner, recipient, amount)
