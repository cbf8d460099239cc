"""
ORACLE RELAY — Ledger Interface
The downstream durable store that published readings and alert records
are written to. Records are keyed by (schema_id, data_id); a later write
to the same key replaces the earlier one.
"""
import hashlib
import itertools
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

_tx_counter = itertools.count(1)


@dataclass(frozen=True)
class SchemaDescriptor:
    """A record layout: human name, field layout and the event emitted on write."""
    name: str
    layout: str
    event_id: str

    @property
    def schema_id(self) -> str:
        return "0x" + hashlib.sha256(self.layout.encode()).hexdigest()


class SchemaStatus(str, Enum):
    REGISTERED = "REGISTERED"
    EXISTS = "EXISTS"


@dataclass(frozen=True)
class LedgerRecord:
    schema_id: str
    data_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    event_id: Optional[str] = None


def make_tx_handle(record: LedgerRecord) -> str:
    """Opaque, unique transaction handle for a submission."""
    seed = f"{record.schema_id}:{record.data_id}:{time.time_ns()}:{next(_tx_counter)}"
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()


class BaseLedger(ABC):
    """Abstract ledger client."""

    name: str = "ledger"

    async def connect(self) -> None:
        """Open connections. Default: nothing to do."""

    async def disconnect(self) -> None:
        """Release connections. Default: nothing to do."""

    @abstractmethod
    async def register_schema(self, descriptor: SchemaDescriptor) -> SchemaStatus:
        """Register a record layout. Returns EXISTS when already known."""

    @abstractmethod
    async def submit(self, record: LedgerRecord) -> str:
        """Write (or overwrite) one record and return its transaction handle."""

    @abstractmethod
    async def query(self, schema_id: str) -> List[LedgerRecord]:
        """All current records for a schema, in first-write order."""

    async def get(self, schema_id: str, data_id: str) -> Optional[LedgerRecord]:
        for record in await self.query(schema_id):
            if record.data_id == data_id:
                return record
        return None

    async def is_healthy(self) -> bool:
        return True
