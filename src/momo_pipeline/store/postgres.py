"""
PostgreSQL Transaction Store.

One table keyed by record id, with a unique index on the content reference
and an index on delivery state. Inserts use INSERT ... ON CONFLICT DO NOTHING
so re-capturing the same message is idempotent.
"""

import json
from contextlib import contextmanager
from typing import Any

import psycopg

from momo_pipeline.core.models import DeliveryState, TransactionRecord
from momo_pipeline.errors import PersistenceError, RecordNotFoundError

from .base import TransactionStore, apply_state_update
from .connection import DatabaseConnectionPool

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transaction_record (
    seq BIGSERIAL NOT NULL,
    id VARCHAR(64) PRIMARY KEY,
    reference VARCHAR(255) NOT NULL,
    country_code CHAR(2) NOT NULL,
    raw JSONB NOT NULL,
    parsed JSONB NOT NULL,
    state VARCHAR(16) NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
    last_error TEXT,
    last_status_code INTEGER,
    remote_id VARCHAR(255),
    wallet_credited BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_transaction_record_reference
    ON transaction_record (reference);
CREATE INDEX IF NOT EXISTS ix_transaction_record_state
    ON transaction_record (state);
"""

COLUMNS = (
    "id, reference, country_code, raw, parsed, state, retry_count, last_error, "
    "last_status_code, remote_id, wallet_credited, created_at, updated_at"
)


@contextmanager
def _translate_errors(operation: str):
    try:
        yield
    except psycopg.Error as e:
        raise PersistenceError(f"{operation} failed: {e}") from e


class PostgresTransactionStore(TransactionStore):
    """
    Transaction store backed by PostgreSQL.

    Every state update runs SELECT ... FOR UPDATE and UPDATE in one
    transaction, so concurrent transitions on the same record serialize.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize the store.

        Args:
            pool: Open database connection pool
        """
        self.pool = pool

    def ensure_schema(self) -> None:
        """Create the table and indices if they do not exist."""
        with _translate_errors("ensure_schema"):
            self.pool.execute_command(SCHEMA_SQL)

    def enqueue(self, record: TransactionRecord) -> str:
        query = f"""
            INSERT INTO transaction_record ({COLUMNS})
            VALUES (%s, %s, %s, %s::jsonb, %s::jsonb, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (reference) DO NOTHING
            RETURNING id
        """

        with _translate_errors("enqueue"):
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, self._record_to_params(record))
                    row = cur.fetchone()
                    if row is None:
                        cur.execute(
                            "SELECT id FROM transaction_record WHERE reference = %s",
                            (record.reference,),
                        )
                        existing = cur.fetchone()
                conn.commit()

        if row is not None:
            self._log_enqueue(record, row["id"], inserted=True)
            return row["id"]

        self._log_enqueue(record, existing["id"], inserted=False)
        return existing["id"]

    def get(self, record_id: str) -> TransactionRecord | None:
        rows = self._select("WHERE id = %s", (record_id,))
        return rows[0] if rows else None

    def get_by_reference(self, reference: str) -> TransactionRecord | None:
        rows = self._select("WHERE reference = %s", (reference,))
        return rows[0] if rows else None

    def list_by_state(self, state: DeliveryState) -> list[TransactionRecord]:
        return self._select("WHERE state = %s ORDER BY seq", (state.value,))

    def update_state(
        self,
        record_id: str,
        new_state: DeliveryState,
        error: str | None = None,
        retry_count: int | None = None,
        remote_id: str | None = None,
        status_code: int | None = None,
    ) -> TransactionRecord:
        with _translate_errors("update_state"):
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT {COLUMNS} FROM transaction_record WHERE id = %s FOR UPDATE",
                        (record_id,),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise RecordNotFoundError(record_id)

                    current = self._row_to_record(row)
                    updated = apply_state_update(
                        current,
                        new_state,
                        error=error,
                        retry_count=retry_count,
                        remote_id=remote_id,
                        status_code=status_code,
                    )

                    cur.execute(
                        """
                        UPDATE transaction_record
                        SET state = %s, retry_count = %s, last_error = %s,
                            last_status_code = %s, remote_id = %s, updated_at = %s
                        WHERE id = %s
                        """,
                        (
                            updated.state.value,
                            updated.retry_count,
                            updated.last_error,
                            updated.last_status_code,
                            updated.remote_id,
                            updated.updated_at,
                            record_id,
                        ),
                    )
                conn.commit()

        self._log_transition(current, updated)
        return updated

    def list_sync_candidates(self, max_retry: int) -> list[TransactionRecord]:
        return self._select(
            """
            WHERE state IN ('PENDING', 'SYNCING')
               OR (state = 'FAILED'
                   AND retry_count < %s
                   AND (last_status_code IS NULL OR last_status_code NOT BETWEEN 400 AND 499))
            ORDER BY seq
            """,
            (max_retry,),
        )

    def mark_wallet_credited(self, record_id: str) -> bool:
        with _translate_errors("mark_wallet_credited"):
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE transaction_record
                        SET wallet_credited = TRUE, updated_at = now()
                        WHERE id = %s AND wallet_credited = FALSE
                        """,
                        (record_id,),
                    )
                    if cur.rowcount == 1:
                        conn.commit()
                        return True

                    cur.execute("SELECT 1 FROM transaction_record WHERE id = %s", (record_id,))
                    exists = cur.fetchone() is not None

        if not exists:
            raise RecordNotFoundError(record_id)
        return False

    def list_uncredited_received(self) -> list[TransactionRecord]:
        return self._select(
            """
            WHERE state = 'SYNCED'
              AND wallet_credited = FALSE
              AND parsed->>'direction' = 'RECEIVED'
              AND (parsed->>'amount')::numeric > 0
            ORDER BY seq
            """
        )

    def count_by_state(self) -> dict[DeliveryState, int]:
        with _translate_errors("count_by_state"):
            rows = self.pool.execute_query(
                "SELECT state, COUNT(*) AS n FROM transaction_record GROUP BY state"
            )

        counts = {state: 0 for state in DeliveryState}
        for row in rows:
            counts[DeliveryState(row["state"])] = row["n"]
        return counts

    def _select(self, where: str, params: tuple | None = None) -> list[TransactionRecord]:
        with _translate_errors("select"):
            rows = self.pool.execute_query(
                f"SELECT {COLUMNS} FROM transaction_record {where}", params
            )
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _record_to_params(record: TransactionRecord) -> tuple:
        return (
            record.id,
            record.reference,
            record.country_code,
            json.dumps(record.raw.model_dump(mode="json")),
            json.dumps(record.parsed.model_dump(mode="json")),
            record.state.value,
            record.retry_count,
            record.last_error,
            record.last_status_code,
            record.remote_id,
            record.wallet_credited,
            record.created_at,
            record.updated_at,
        )

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> TransactionRecord:
        return TransactionRecord.model_validate(row)
