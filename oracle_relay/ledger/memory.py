"""
ORACLE RELAY — In-Memory Ledger
Process-local ledger for development and tests.
"""
from typing import Dict, List, Tuple

from oracle_relay.data.errors import LedgerSubmitFailed
from oracle_relay.ledger.base import BaseLedger, LedgerRecord, SchemaDescriptor, SchemaStatus, make_tx_handle
from oracle_relay.utils.logger import get_logger

logger = get_logger("memory_ledger")


class InMemoryLedger(BaseLedger):
    name = "memory"

    def __init__(self):
        self.schemas: Dict[str, SchemaDescriptor] = {}
        self._records: Dict[Tuple[str, str], LedgerRecord] = {}
        self.events: List[Tuple[str, LedgerRecord]] = []
        self.submissions = 0

    async def register_schema(self, descriptor: SchemaDescriptor) -> SchemaStatus:
        if descriptor.schema_id in self.schemas:
            return SchemaStatus.EXISTS
        self.schemas[descriptor.schema_id] = descriptor
        logger.info("schema_registered", schema=descriptor.name, schema_id=descriptor.schema_id[:18])
        return SchemaStatus.REGISTERED

    async def submit(self, record: LedgerRecord) -> str:
        if record.schema_id not in self.schemas:
            raise LedgerSubmitFailed(f"schema {record.schema_id[:18]} is not registered")

        # dict keeps first-insertion order on overwrite
        self._records[(record.schema_id, record.data_id)] = record
        if record.event_id:
            self.events.append((record.event_id, record))
        self.submissions += 1
        return make_tx_handle(record)

    async def query(self, schema_id: str) -> List[LedgerRecord]:
        return [r for (sid, _), r in self._records.items() if sid == schema_id]
