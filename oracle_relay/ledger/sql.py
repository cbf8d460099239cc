"""
ORACLE RELAY — SQL Ledger
SQLAlchemy-backed ledger (SQLite + aiosqlite by default). One row per
(schema_id, data_id); submissions overwrite in place.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, UniqueConstraint, Index, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from oracle_relay.data.errors import LedgerSubmitFailed, LedgerUnavailable
from oracle_relay.ledger.base import BaseLedger, LedgerRecord, SchemaDescriptor, SchemaStatus, make_tx_handle
from oracle_relay.utils.logger import get_logger

logger = get_logger("sql_ledger")

Base = declarative_base()


class SchemaRow(Base):
    """Registered record layout."""
    __tablename__ = "ledger_schemas"

    schema_id = Column(String(66), primary_key=True)
    name = Column(String(64), nullable=False)
    layout = Column(Text, nullable=False)
    event_id = Column(String(64))
    registered_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class RecordRow(Base):
    """Current value of one ledger slot."""
    __tablename__ = "ledger_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    schema_id = Column(String(66), nullable=False)
    data_id = Column(String(128), nullable=False)
    fields = Column(JSON, nullable=False)
    event_id = Column(String(64))
    tx_handle = Column(String(66), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("schema_id", "data_id", name="uq_records_slot"),
        Index("idx_records_schema", "schema_id"),
    )


class SqlLedger(BaseLedger):
    name = "sql"

    def __init__(self, db_url: str = "sqlite+aiosqlite:///oracle_relay.db", echo: bool = False):
        self.db_url = db_url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    async def connect(self) -> None:
        if self._engine is not None:
            return
        kwargs = {"echo": self.echo}
        if ":memory:" in self.db_url:
            # Single shared connection, otherwise each session sees an empty database
            kwargs["poolclass"] = StaticPool
        try:
            self._engine = create_async_engine(self.db_url, **kwargs)
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            self._engine = None
            raise LedgerUnavailable(f"cannot open ledger database: {e}") from e

        self._sessions = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("sql_ledger_connected", url=self.db_url)

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("sql_ledger_disconnected")

    def _session(self) -> AsyncSession:
        if self._sessions is None:
            raise LedgerUnavailable("ledger not connected")
        return self._sessions()

    async def register_schema(self, descriptor: SchemaDescriptor) -> SchemaStatus:
        try:
            async with self._session() as session:
                existing = await session.get(SchemaRow, descriptor.schema_id)
                if existing is not None:
                    return SchemaStatus.EXISTS
                session.add(SchemaRow(
                    schema_id=descriptor.schema_id,
                    name=descriptor.name,
                    layout=descriptor.layout,
                    event_id=descriptor.event_id,
                ))
                await session.commit()
        except IntegrityError:
            return SchemaStatus.EXISTS
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"schema registration failed: {e}") from e

        logger.info("schema_registered", schema=descriptor.name, schema_id=descriptor.schema_id[:18])
        return SchemaStatus.REGISTERED

    async def submit(self, record: LedgerRecord) -> str:
        tx_handle = make_tx_handle(record)
        try:
            async with self._session() as session:
                if await session.get(SchemaRow, record.schema_id) is None:
                    raise LedgerSubmitFailed(f"schema {record.schema_id[:18]} is not registered")

                result = await session.execute(
                    select(RecordRow).where(
                        RecordRow.schema_id == record.schema_id,
                        RecordRow.data_id == record.data_id,
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(RecordRow(
                        schema_id=record.schema_id,
                        data_id=record.data_id,
                        fields=dict(record.fields),
                        event_id=record.event_id,
                        tx_handle=tx_handle,
                    ))
                else:
                    row.fields = dict(record.fields)
                    row.event_id = record.event_id
                    row.tx_handle = tx_handle
                    row.updated_at = datetime.now(timezone.utc)
                await session.commit()
        except SQLAlchemyError as e:
            raise LedgerSubmitFailed(f"submit failed for {record.data_id}: {e}") from e
        return tx_handle

    async def query(self, schema_id: str) -> List[LedgerRecord]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(RecordRow).where(RecordRow.schema_id == schema_id).order_by(RecordRow.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"query failed: {e}") from e

        return [
            LedgerRecord(schema_id=r.schema_id, data_id=r.data_id, fields=dict(r.fields), event_id=r.event_id)
            for r in rows
        ]

    async def is_healthy(self) -> bool:
        return self._engine is not None
