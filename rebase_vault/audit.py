"""
Audit Trail Module

Append-only record of every ledger and vault mutation. Entries are chained
by SHA-256: each one hashes its own content together with the hash of the
entry before it, so editing, reordering or removing an entry breaks the
chain. Entries are written inside the mutation's unit of work; a rolled-back
operation leaves nothing behind.
"""

import hashlib
import json
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .storage import StorageInterface


class AuditEventType(Enum):
    # Rate policy
    INTEREST_RATE_SET = "interest_rate_set"

    # Ledger mutations
    INTEREST_SETTLED = "interest_settled"
    TOKENS_MINTED = "tokens_minted"
    TOKENS_BURNED = "tokens_burned"
    TOKENS_TRANSFERRED = "tokens_transferred"
    RATE_LOCKED = "rate_locked"
    ALLOWANCE_SET = "allowance_set"

    # Vault flows
    DEPOSIT = "deposit"
    REDEMPTION = "redemption"
    REWARDS_FUNDED = "rewards_funded"


def _serialize(value: Any) -> Any:
    """JSON-stable form of metadata values (ints as decimal strings)"""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


@dataclass
class AuditEvent:
    """One link of the audit chain"""
    id: str
    sequence: int        # 1-based position in the chain
    ledger_time: int     # clock reading of the operation
    event_type: AuditEventType
    entity_type: str     # account, ledger, vault
    entity_id: str
    previous_hash: str
    current_hash: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.metadata = _serialize(self.metadata)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event_type'] = self.event_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        fields = dict(data)
        fields['sequence'] = int(fields['sequence'])
        fields['ledger_time'] = int(fields['ledger_time'])
        fields['event_type'] = AuditEventType(fields['event_type'])
        fields['metadata'] = fields.get('metadata') or {}
        return cls(**fields)

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        content = self.to_dict()
        del content['current_hash']
        canonical = json.dumps(content, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()


class AuditTrail:
    """
    Hash-chained audit log kept in a storage table

    The chain head (last sequence number and hash) is itself a stored
    record, so a storage rollback rewinds the chain with the entries.
    """

    HEAD_ID = "head"

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self.head_table = f"{table_name}_head"

    def _head(self) -> Dict[str, Any]:
        return self.storage.load(self.head_table, self.HEAD_ID) or {"sequence": 0, "last_hash": ""}

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        ledger_time: int,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditEvent:
        """
        Append an entry to the chain

        Args:
            event_type: Kind of mutation
            entity_type: "account", "ledger" or "vault"
            entity_id: Address of the entity
            ledger_time: Clock reading of the operation
            metadata: Amounts, rates and counterparties of the mutation

        Returns:
            The stored AuditEvent
        """
        with self.storage.atomic():
            head = self._head()
            event = AuditEvent(
                id=str(uuid.uuid4()),
                sequence=head["sequence"] + 1,
                ledger_time=ledger_time,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=head["last_hash"],
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self.storage.save(self.head_table, self.HEAD_ID,
                              {"sequence": event.sequence, "last_hash": event.current_hash})
            return event

    @staticmethod
    def _tail(events: List[AuditEvent], limit: Optional[int]) -> List[AuditEvent]:
        events.sort(key=lambda e: e.sequence)
        return events[-limit:] if limit else events

    def get_all_events(self, limit: Optional[int] = None) -> List[AuditEvent]:
        """Entries in chain order; with limit, only the most recent ones"""
        return self._tail([AuditEvent.from_dict(d) for d in self.storage.load_all(self.table_name)], limit)

    def get_events_for_entity(self, entity_type: str, entity_id: str,
                              limit: Optional[int] = None) -> List[AuditEvent]:
        matches = self.storage.find(self.table_name, {'entity_type': entity_type, 'entity_id': entity_id})
        return self._tail([AuditEvent.from_dict(d) for d in matches], limit)

    def get_events_by_type(self, event_type: AuditEventType, limit: Optional[int] = None) -> List[AuditEvent]:
        matches = self.storage.find(self.table_name, {'event_type': event_type.value})
        return self._tail([AuditEvent.from_dict(d) for d in matches], limit)

    def get_event_by_id(self, event_id: str) -> Optional[AuditEvent]:
        data = self.storage.load(self.table_name, event_id)
        return AuditEvent.from_dict(data) if data else None

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def get_latest_hash(self) -> Optional[str]:
        return self._head()["last_hash"] or None

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Recompute every hash and walk the chain

        Returns:
            {"valid", "total_events", "hash_errors", "chain_breaks"}; each
            error names the entry id and its position in the chain
        """
        events = self.get_all_events()
        hash_errors = []
        chain_breaks = []

        expected_previous = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                hash_errors.append({
                    'event_id': event.id,
                    'position': position,
                    'stored': event.current_hash,
                    'recomputed': event.calculate_hash(),
                })
            if event.sequence != position + 1 or event.previous_hash != expected_previous:
                chain_breaks.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous': expected_previous,
                    'found_previous': event.previous_hash,
                })
            expected_previous = event.current_hash

        return {
            'valid': not hash_errors and not chain_breaks,
            'total_events': len(events),
            'hash_errors': hash_errors,
            'chain_breaks': chain_breaks,
        }
