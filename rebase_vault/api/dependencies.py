"""
Vault system wiring and shared FastAPI dependencies
"""

from typing import Optional
from fastapi import HTTPException

from ..audit import AuditTrail
from ..clock import Clock, SystemClock
from ..config import VaultConfig, get_config
from ..errors import (
    ArithmeticOverflow, DepositFailed, InsufficientAllowance,
    InsufficientBalance, RateIncreaseRejected, RedeemFailed
)
from ..events import EventDispatcher
from ..gateway import CustodyGateway, ReserveCustodian
from ..ledger import AccrualLedger
from ..logging_config import get_logger
from ..storage import StorageInterface, create_storage


logger = get_logger("rebase_vault.api")


class VaultSystem:
    """Ledger, vault and their collaborators initialized from configuration"""

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()

        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()
        self.event_dispatcher = EventDispatcher()
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None

        self.ledger = AccrualLedger(
            self.storage,
            self.clock,
            event_dispatcher=self.event_dispatcher,
            audit_trail=self.audit_trail,
            precision_factor=self.config.precision_factor,
            initial_interest_rate=self.config.initial_interest_rate,
            name=self.config.token_name,
            symbol=self.config.token_symbol,
            decimals=self.config.token_decimals
        )
        self.custodian = ReserveCustodian(self.storage)
        self.gateway = CustodyGateway(self.ledger, self.custodian)


_vault_system: Optional[VaultSystem] = None


def get_vault_system() -> VaultSystem:
    """FastAPI dependency returning the process-wide vault system"""
    global _vault_system
    if _vault_system is None:
        _vault_system = VaultSystem()
    return _vault_system


def to_http_exception(error: Exception) -> HTTPException:
    """Map a ledger/vault error onto an HTTP error response"""
    logger.info(f"Request rejected: {type(error).__name__}: {error}")
    if isinstance(error, RateIncreaseRejected):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (InsufficientBalance, InsufficientAllowance, RedeemFailed,
                          DepositFailed, ArithmeticOverflow)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=422, detail=str(error))
    logger.error(f"Unmapped error {type(error).__name__}: {error}")
    return HTTPException(status_code=500, detail="Internal error")
