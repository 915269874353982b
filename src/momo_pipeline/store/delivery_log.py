"""
Append-only webhook delivery log writers.
"""

import itertools
import threading
from abc import ABC, abstractmethod

import psycopg

from momo_pipeline.core.models import DeliveryLog
from momo_pipeline.errors import PersistenceError

from .connection import DatabaseConnectionPool

DELIVERY_LOG_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS webhook_delivery_log (
    log_id BIGSERIAL PRIMARY KEY,
    webhook_id VARCHAR(255) NOT NULL,
    record_id VARCHAR(64),
    phone_number VARCHAR(64),
    sender VARCHAR(64),
    status VARCHAR(16) NOT NULL CHECK (status IN ('sent', 'failed')),
    response_code INTEGER,
    response_body TEXT,
    processing_time_ms INTEGER NOT NULL DEFAULT 0,
    sent_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_webhook_delivery_log_webhook
    ON webhook_delivery_log (webhook_id, created_at);
"""


class DeliveryLogWriter(ABC):
    """Appends delivery attempts; entries are never updated or deleted."""

    @abstractmethod
    def append(self, entry: DeliveryLog) -> DeliveryLog:
        """
        Append one delivery attempt.

        Args:
            entry: Delivery log entry without log_id

        Returns:
            The stored entry with log_id assigned

        Raises:
            PersistenceError: If the entry cannot be written
        """
        pass

    @abstractmethod
    def list_for_webhook(self, webhook_id: str) -> list[DeliveryLog]:
        pass


class InMemoryDeliveryLogWriter(DeliveryLogWriter):

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._entries: list[DeliveryLog] = []

    def append(self, entry: DeliveryLog) -> DeliveryLog:
        with self._lock:
            stored = entry.model_copy(update={"log_id": next(self._ids)})
            self._entries.append(stored)
        return stored

    def list_for_webhook(self, webhook_id: str) -> list[DeliveryLog]:
        with self._lock:
            return [e for e in self._entries if e.webhook_id == webhook_id]

    @property
    def entries(self) -> list[DeliveryLog]:
        with self._lock:
            return list(self._entries)


class PostgresDeliveryLogWriter(DeliveryLogWriter):

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def ensure_schema(self) -> None:
        try:
            self.pool.execute_command(DELIVERY_LOG_SCHEMA_SQL)
        except psycopg.Error as e:
            raise PersistenceError(f"ensure_schema failed: {e}") from e

    def append(self, entry: DeliveryLog) -> DeliveryLog:
        query = """
            INSERT INTO webhook_delivery_log (
                webhook_id, record_id, phone_number, sender, status, response_code,
                response_body, processing_time_ms, sent_at, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING log_id
        """
        try:
            result = self.pool.execute_query(
                query,
                (
                    entry.webhook_id,
                    entry.record_id,
                    entry.phone_number,
                    entry.sender,
                    entry.status,
                    entry.response_code,
                    entry.response_body,
                    entry.processing_time_ms,
                    entry.sent_at,
                    entry.created_at,
                ),
            )
        except psycopg.Error as e:
            raise PersistenceError(f"Delivery log write failed: {e}") from e

        return entry.model_copy(update={"log_id": result[0]["log_id"]})

    def list_for_webhook(self, webhook_id: str) -> list[DeliveryLog]:
        try:
            rows = self.pool.execute_query(
                """
                SELECT log_id, webhook_id, record_id, phone_number, sender, status,
                       response_code, response_body, processing_time_ms, sent_at, created_at
                FROM webhook_delivery_log
                WHERE webhook_id = %s
                ORDER BY log_id
                """,
                (webhook_id,),
            )
        except psycopg.Error as e:
            raise PersistenceError(f"Delivery log read failed: {e}") from e

        return [DeliveryLog.model_validate(row) for row in rows]
