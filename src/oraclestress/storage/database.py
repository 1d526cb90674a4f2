"""Relational sink for run metrics.

One row per run attempt in the ``metrics`` table. PostgreSQL in
production; any SQLAlchemy URL works, and tests use in-memory SQLite.
Writes run in a worker thread so they never block the event loop.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import JSON, BigInteger, Boolean, Column, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from oraclestress.models.metrics import OutputMetrics

logger = logging.getLogger(__name__)

Base = declarative_base()


class MetricsRow(Base):
    __tablename__ = "metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    test_key = Column(String(64), nullable=False, index=True)
    success = Column(Boolean, nullable=False)
    request_count = Column(Integer, nullable=False)
    wallet_count = Column(Integer, nullable=False)
    chain_count = Column(Integer, nullable=False)
    run_start = Column(BigInteger, nullable=False)
    run_end = Column(BigInteger, nullable=False)
    run_delta = Column(BigInteger, nullable=False)
    metrics = Column(JSON, nullable=False)
    test_type = Column(String(32), nullable=False)
    comment = Column(Text, nullable=True)
    on_chain_metrics = Column(JSON, nullable=False)


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # In-memory SQLite needs one shared connection across threads
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


class MetricsDatabase:
    """Writes OutputMetrics rows and reads them back for reports."""

    def __init__(self, url: str) -> None:
        self.engine = make_engine(url)
        self._sessions = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def insert(self, result: OutputMetrics) -> int:
        row = MetricsRow(
            test_key=result.test_key,
            success=result.success,
            request_count=result.request_count,
            wallet_count=result.wallet_count,
            chain_count=result.chain_count,
            run_start=result.run_start,
            run_end=result.run_end,
            run_delta=result.run_delta_ms,
            metrics=[record.model_dump(mode="json") for record in result.metrics],
            test_type=result.test_type,
            comment=result.comment,
            on_chain_metrics=result.on_chain_metrics.model_dump(mode="json"),
        )
        with self._sessions() as session:
            session.add(row)
            session.commit()
            return row.id

    async def save(self, result: OutputMetrics) -> None:
        row_id = await asyncio.to_thread(self.insert, result)
        logger.info("Saved metrics row %d for %s", row_id, result.test_key)

    def fetch(self, test_key: str | None = None) -> list[MetricsRow]:
        with self._sessions() as session:
            query = session.query(MetricsRow).order_by(MetricsRow.id)
            if test_key is not None:
                query = query.filter(MetricsRow.test_key == test_key)
            rows = query.all()
            session.expunge_all()
            return rows

    def close(self) -> None:
        self.engine.dispose()
