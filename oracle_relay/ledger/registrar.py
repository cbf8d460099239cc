"""
ORACLE RELAY — Schema Registrar
One-time, idempotent registration of record layouts with the ledger.
"""
from typing import Dict, Optional, Sequence

from oracle_relay.data.errors import LedgerError, LedgerUnavailable, SchemaAlreadyRegistered
from oracle_relay.ledger.base import BaseLedger, SchemaDescriptor, SchemaStatus
from oracle_relay.ledger.schemas import ALL_SCHEMAS
from oracle_relay.utils.logger import get_logger

logger = get_logger("schema_registrar")

_ALREADY_MARKERS = ("already registered", "alreadyregistered", "already exists")


def _is_already_registered(error: Exception) -> bool:
    if isinstance(error, SchemaAlreadyRegistered):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _ALREADY_MARKERS)


class SchemaRegistrar:
    """Registers every layout the relay writes. Safe to call repeatedly."""

    def __init__(self, ledger: BaseLedger, descriptors: Optional[Sequence[SchemaDescriptor]] = None):
        self.ledger = ledger
        self.descriptors = list(descriptors or ALL_SCHEMAS)
        self.statuses: Dict[str, SchemaStatus] = {}

    @property
    def registered(self) -> bool:
        return len(self.statuses) == len(self.descriptors)

    async def register(self) -> Dict[str, SchemaStatus]:
        for descriptor in self.descriptors:
            if descriptor.name in self.statuses:
                continue
            self.statuses[descriptor.name] = await self._register_one(descriptor)
        return dict(self.statuses)

    async def _register_one(self, descriptor: SchemaDescriptor) -> SchemaStatus:
        try:
            status = await self.ledger.register_schema(descriptor)
        except LedgerError as e:
            if _is_already_registered(e):
                logger.info("schema_already_registered", schema=descriptor.name)
                return SchemaStatus.EXISTS
            logger.error("schema_registration_failed", schema=descriptor.name, error=str(e))
            raise LedgerUnavailable(f"could not register {descriptor.name}: {e}") from e

        logger.info("schema_ready", schema=descriptor.name, status=status.value)
        return status
