"""
Pytest configuration and fixtures for momo-pipeline tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import httpx
import pytest

from momo_pipeline.core.models import (
    Direction,
    ParsedTransaction,
    ParserKind,
    RawMessage,
    TransactionRecord,
)
from momo_pipeline.core.parsing import KeywordHeuristicParser, MessageClassifier, compute_reference
from momo_pipeline.core.patterns import PatternRegistry
from momo_pipeline.store import InMemoryDeliveryLogWriter, InMemoryTransactionStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_momo",
        password="test_password",
        dbname="test_momo",
    ) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container):
    """
    Open a connection pool against the test container with the schema created

    Yields:
        DatabaseConnectionPool
    """
    from momo_pipeline.store import PostgresDeliveryLogWriter, PostgresTransactionStore
    from momo_pipeline.store.connection import DatabaseConnectionPool

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_momo",
        user="test_momo",
        password="test_password",
    )
    pool.open()
    PostgresTransactionStore(pool).ensure_schema()
    PostgresDeliveryLogWriter(pool).ensure_schema()

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool):
    """
    Provide a clean database by truncating all tables before each test

    Yields:
        DatabaseConnectionPool with empty tables
    """
    db_pool.execute_command("TRUNCATE TABLE transaction_record, webhook_delivery_log")
    yield db_pool


# =======================
# PIPELINE FIXTURES
# =======================

@pytest.fixture(scope="session")
def registry() -> PatternRegistry:
    """Registry built from the bundled provider patterns"""
    return PatternRegistry.default()


@pytest.fixture
def classifier(registry) -> MessageClassifier:
    return MessageClassifier(registry, fallback=KeywordHeuristicParser())


@pytest.fixture
def memory_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def delivery_log() -> InMemoryDeliveryLogWriter:
    return InMemoryDeliveryLogWriter()


@pytest.fixture
def make_record() -> Callable[..., TransactionRecord]:
    """
    Factory for TransactionRecord instances

    Each call produces a record with a distinct body (and so a distinct
    reference) unless body is given explicitly.
    """
    counter = {"n": 0}

    def _make(
        body: str | None = None,
        sender: str = "M-Money",
        direction: Direction = Direction.RECEIVED,
        amount: str = "5000",
        currency: str = "RWF",
        transaction_id: str | None = None,
        line: str | None = "+250788000111",
        country_code: str = "RW",
    ) -> TransactionRecord:
        counter["n"] += 1
        body = body or f"You have received RWF {amount} from 07881234{counter['n']:02d}."
        raw = RawMessage(
            sender=sender,
            body=body,
            received_at=datetime(2025, 11, 17, 8, 30, counter["n"] % 60, tzinfo=timezone.utc),
            line=line,
        )
        parsed = ParsedTransaction(
            amount=Decimal(amount),
            currency=currency,
            party=f"07881234{counter['n']:02d}",
            transaction_id=transaction_id,
            direction=direction,
            confidence=1.0,
            parser=ParserKind.PATTERN,
            provider_code="MTN",
            provider_name="MTN Mobile Money",
        )
        return TransactionRecord(
            reference=compute_reference(country_code, sender, body, "MTN", transaction_id),
            country_code=country_code,
            raw=raw,
            parsed=parsed,
        )

    return _make


# =======================
# HTTP FIXTURES
# =======================

class ScriptedBackend:
    """
    httpx.MockTransport handler returning scripted responses

    Responses are taken in call order; each entry is either a status code, a
    (status code, json body) tuple, or an exception instance to raise.
    """

    def __init__(self, script: list | None = None, default=200):
        self.script = list(script or [])
        self.default = default
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0) if self.script else self.default

        if isinstance(step, Exception):
            raise step
        if isinstance(step, tuple):
            status, body = step
            return httpx.Response(status, json=body)
        if 200 <= step < 300:
            return httpx.Response(step, json={"id": f"remote-{len(self.requests)}"})
        return httpx.Response(step, text=f"status {step}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def scripted_backend() -> Callable[..., ScriptedBackend]:
    def _make(script: list | None = None, default=200) -> ScriptedBackend:
        return ScriptedBackend(script, default)

    return _make
