"""
Command-line interface for the SMS capture and delivery pipeline.

Usage:
    momo-pipeline classify --sender <sender> --body <text> [--country RW]
    momo-pipeline ingest --file <events.jsonl> [--sync]
    momo-pipeline sync
    momo-pipeline status
    momo-pipeline webhook-test --webhook-id <id>
    momo-pipeline webhook-retry [--max-attempts N]

Settings are read from MOMO_* environment variables (see config.py);
--env-file loads them from a .env file first.
"""

import argparse
import contextlib
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from momo_pipeline.config import ConfigError, PipelineSettings, load_webhook_configs
from momo_pipeline.core.models import DeliveryState, RawMessage, SyncOutcome
from momo_pipeline.core.parsing import KeywordHeuristicParser, MessageClassifier
from momo_pipeline.core.patterns import DEFAULT_PATTERNS_PATH, PatternRegistry
from momo_pipeline.errors import PipelineError
from momo_pipeline.observability.logger import DEFAULT_LOGGER_NAME, get_logger, setup_logger
from momo_pipeline.observability.metrics import start_metrics_server
from momo_pipeline.pipeline import CapturePipeline
from momo_pipeline.store import (
    DeliveryLogWriter,
    InMemoryDeliveryLogWriter,
    InMemoryTransactionStore,
    TransactionStore,
)
from momo_pipeline.sync import BackendClient, SyncEngine, TokenWallet, WalletCreditor
from momo_pipeline.utils.validation import ValidationError as InputValidationError
from momo_pipeline.utils.validation import validate_country_code, validate_sender_id
from momo_pipeline.webhook import WebhookDispatcher, WebhookRelay

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_RETRY = 75

OUTCOME_EXIT_CODES = {
    SyncOutcome.SUCCESS: EXIT_OK,
    SyncOutcome.RETRY: EXIT_RETRY,
    SyncOutcome.FAILURE: EXIT_FAILURE,
}


def build_registry(settings: PipelineSettings) -> PatternRegistry:
    return PatternRegistry.from_yaml(settings.patterns_path or DEFAULT_PATTERNS_PATH)


def build_classifier(settings: PipelineSettings) -> MessageClassifier:
    return MessageClassifier(build_registry(settings), fallback=KeywordHeuristicParser())


def build_store(settings: PipelineSettings) -> TransactionStore:
    """Create the configured transaction store."""
    if settings.store == "memory":
        return InMemoryTransactionStore()

    from momo_pipeline.store.connection import DatabaseConnectionPool
    from momo_pipeline.store.postgres import PostgresTransactionStore

    pool = DatabaseConnectionPool(timeout=settings.http_timeout)
    pool.open()
    store = PostgresTransactionStore(pool)
    store.ensure_schema()
    return store


def build_delivery_log(store: TransactionStore) -> DeliveryLogWriter:
    """Create the webhook delivery log next to the transaction store."""
    if isinstance(store, InMemoryTransactionStore):
        return InMemoryDeliveryLogWriter()

    from momo_pipeline.store.delivery_log import PostgresDeliveryLogWriter

    log_writer = PostgresDeliveryLogWriter(store.pool)
    log_writer.ensure_schema()
    return log_writer


def _webhooks_path(args, settings: PipelineSettings) -> str | Path | None:
    return getattr(args, "webhooks", None) or settings.webhooks_path


def build_relay(settings: PipelineSettings, log_writer: DeliveryLogWriter | None = None) -> WebhookRelay:
    return WebhookRelay(log_writer=log_writer, timeout=settings.http_timeout, device_id=settings.device_id)


def build_engine(
    settings: PipelineSettings, store: TransactionStore, wallet: TokenWallet | None = None
) -> SyncEngine:
    """
    Create the sync engine for a store.

    Wallet crediting is enabled only when a wallet is supplied; the
    credit flag of a record is never set without a ledger behind it.
    """
    if not settings.backend_url:
        raise ConfigError("MOMO_BACKEND_URL must be set to sync")

    client = BackendClient(
        settings.backend_url,
        api_key=settings.api_key,
        device_id=settings.device_id,
        merchant_code=settings.merchant_code,
        timeout=settings.http_timeout,
    )
    creditor = WalletCreditor(store, wallet) if wallet is not None else None
    return SyncEngine(store, client, max_retry=settings.max_retry, creditor=creditor)


def classify_command(args, settings: PipelineSettings) -> int:
    """Classify a single message and print the parsed fields."""
    country_code = validate_country_code(args.country or settings.country_code)
    sender = validate_sender_id(args.sender)

    parsed = build_classifier(settings).classify(country_code, sender, args.body)
    if parsed is None:
        print(f"Not a financial notification (no provider for sender {sender!r} in {country_code})")
        return EXIT_OK

    print(json.dumps(parsed.model_dump(mode="json"), indent=2))
    return EXIT_OK


def _read_events(path: Path):
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield line_no, RawMessage(**json.loads(line))
            except (json.JSONDecodeError, ValidationError, TypeError) as e:
                logger.warning(
                    "Skipping malformed SMS event",
                    extra={"line_no": line_no, "error_message": str(e)},
                )
                yield line_no, None


def ingest_command(args, settings: PipelineSettings) -> int:
    """
    Capture every SMS event of a JSON-lines file.

    When webhooks are configured each newly saved record is relayed to
    its destinations as it is captured.
    """
    country_code = validate_country_code(args.country or settings.country_code)
    store = build_store(settings)
    webhooks_path = _webhooks_path(args, settings)
    deliveries = []

    with contextlib.ExitStack() as stack:
        on_captured = None
        if webhooks_path:
            configs = load_webhook_configs(webhooks_path)
            relay = stack.enter_context(build_relay(settings, build_delivery_log(store)))
            dispatcher = WebhookDispatcher(relay, configs, device_id=settings.device_id)

            def relay_record(record):
                deliveries.extend(dispatcher.dispatch(record))

            on_captured = relay_record

        pipeline = CapturePipeline(build_classifier(settings), store, on_captured=on_captured)

        counts = {"saved": 0, "duplicate": 0, "not_financial": 0, "malformed": 0}
        for _, raw in _read_events(Path(args.file)):
            if raw is None:
                counts["malformed"] += 1
                continue
            result = pipeline.capture(raw, country_code)
            counts[result.status] += 1

    print(f"\n{'=' * 60}")
    print(f"INGEST SUMMARY: {args.file}")
    print(f"{'=' * 60}")
    for key, value in counts.items():
        print(f"  {key:<15} {value}")

    if webhooks_path:
        sent = [r for r in deliveries if not r.skipped]
        print(f"\nWebhooks: {sum(r.success for r in sent)} delivered, {sum(not r.success for r in sent)} failed")

    if args.sync:
        return _run_sync(settings, store)
    return EXIT_OK


def _run_sync(settings: PipelineSettings, store: TransactionStore) -> int:
    engine = build_engine(settings, store)
    try:
        report = engine.run_sync_once()
    finally:
        engine.client.close()

    print(f"\nSync outcome: {report.outcome.value}")
    print(f"  selected   {report.selected}")
    print(f"  synced     {report.synced}")
    print(f"  re-armed   {report.rearmed}")
    print(f"  rejected   {report.rejected}")
    print(f"  exhausted  {report.exhausted}")
    print(f"  credited   {report.credited}")
    return OUTCOME_EXIT_CODES[report.outcome]


def sync_command(args, settings: PipelineSettings) -> int:
    """Run one sync invocation against the configured store."""
    return _run_sync(settings, build_store(settings))


def status_command(args, settings: PipelineSettings) -> int:
    """Print record counts per delivery state."""
    counts = build_store(settings).count_by_state()

    print(f"\n{'State':<10} {'Records':>8}")
    print(f"{'-' * 19}")
    for state in DeliveryState:
        print(f"{state.value:<10} {counts.get(state, 0):>8}")
    print(f"{'-' * 19}")
    print(f"{'TOTAL':<10} {sum(counts.values()):>8}")
    return EXIT_OK


def webhook_test_command(args, settings: PipelineSettings) -> int:
    """Send a signed connectivity test to one configured webhook."""
    webhooks_path = _webhooks_path(args, settings)
    if not webhooks_path:
        raise ConfigError("No webhook configuration: pass --webhooks or set MOMO_WEBHOOKS_PATH")

    configs = {c.id: c for c in load_webhook_configs(webhooks_path)}
    config = configs.get(args.webhook_id)
    if config is None:
        print(f"Unknown webhook id: {args.webhook_id}")
        return EXIT_FAILURE

    with build_relay(settings) as relay:
        result = WebhookDispatcher(relay, device_id=settings.device_id).test_destination(config)

    if result.skipped:
        print(f"Webhook {config.id} is inactive; nothing sent")
        return EXIT_OK
    if result.success:
        print(f"Connection successful ({result.status_code}, {result.processing_time_ms} ms)")
        return EXIT_OK

    print(f"Connection failed: {result.error}")
    return EXIT_FAILURE


def webhook_retry_command(args, settings: PipelineSettings) -> int:
    """Redeliver webhooks whose latest logged attempt failed."""
    webhooks_path = _webhooks_path(args, settings)
    if not webhooks_path:
        raise ConfigError("No webhook configuration: pass --webhooks or set MOMO_WEBHOOKS_PATH")

    configs = load_webhook_configs(webhooks_path)
    store = build_store(settings)
    max_attempts = args.max_attempts or settings.max_retry

    with build_relay(settings, build_delivery_log(store)) as relay:
        dispatcher = WebhookDispatcher(relay, configs, device_id=settings.device_id)
        results = dispatcher.retry_failed(store, max_attempts=max_attempts)

    delivered = sum(r.success for r in results)
    print(f"\nWebhook retry: {len(results)} redelivered, {delivered} succeeded")
    return EXIT_OK if delivered == len(results) else EXIT_RETRY


COMMANDS = {
    "classify": classify_command,
    "ingest": ingest_command,
    "sync": sync_command,
    "status": status_command,
    "webhook-test": webhook_test_command,
    "webhook-retry": webhook_retry_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="momo-pipeline",
        description="SMS transaction capture and delivery pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        help="Load settings from this .env file first"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: env var LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--store",
        choices=["memory", "postgres"],
        help="Transaction store (default: env var MOMO_STORE or memory)"
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Expose Prometheus metrics on METRICS_PORT while running"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    classify_parser = subparsers.add_parser("classify", help="Classify one SMS")
    classify_parser.add_argument("--sender", required=True, help="SMS sender address")
    classify_parser.add_argument("--body", required=True, help="SMS text")
    classify_parser.add_argument("--country", help="ISO country code (default: MOMO_COUNTRY_CODE)")

    ingest_parser = subparsers.add_parser("ingest", help="Capture SMS events from a JSON-lines file")
    ingest_parser.add_argument("--file", required=True, help="Path to the JSON-lines events file")
    ingest_parser.add_argument("--country", help="ISO country code (default: MOMO_COUNTRY_CODE)")
    ingest_parser.add_argument(
        "--sync",
        action="store_true",
        help="Run one sync invocation after ingesting"
    )
    ingest_parser.add_argument("--webhooks", help="Webhook YAML (default: MOMO_WEBHOOKS_PATH)")

    subparsers.add_parser("sync", help="Run one sync invocation")
    subparsers.add_parser("status", help="Show record counts per delivery state")

    webhook_parser = subparsers.add_parser("webhook-test", help="Send a test payload to a webhook")
    webhook_parser.add_argument("--webhook-id", required=True, help="Webhook id to test")
    webhook_parser.add_argument("--webhooks", help="Webhook YAML (default: MOMO_WEBHOOKS_PATH)")

    retry_parser = subparsers.add_parser("webhook-retry", help="Redeliver failed webhook deliveries")
    retry_parser.add_argument("--webhooks", help="Webhook YAML (default: MOMO_WEBHOOKS_PATH)")
    retry_parser.add_argument(
        "--max-attempts",
        type=int,
        help="Attempts allowed per webhook and record (default: MOMO_MAX_RETRY)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the pipeline CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    try:
        settings = PipelineSettings.from_env(env_file=args.env_file)
        if args.store:
            settings = settings.model_copy(update={"store": args.store})
    except ConfigError as e:
        print(f"\nError: {e}")
        return EXIT_USAGE

    setup_logger(DEFAULT_LOGGER_NAME, level=args.log_level)
    if args.metrics:
        start_metrics_server(settings.metrics_port)

    try:
        return COMMANDS[args.command](args, settings)
    except (ConfigError, InputValidationError) as e:
        print(f"\nError: {e}")
        return EXIT_USAGE
    except PipelineError as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"\nError: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
