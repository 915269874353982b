"""
Runtime configuration for momo-pipeline.

Settings come from environment variables, optionally loaded from a .env
file with python-dotenv. Webhook destinations are read from YAML.
"""

import os
from pathlib import Path
from typing import Literal, Mapping

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from momo_pipeline.core.models import WebhookConfig
from momo_pipeline.errors import PipelineError
from momo_pipeline.observability.logger import get_logger

logger = get_logger(__name__)


class ConfigError(PipelineError):
    """Raised when settings or a configuration file are invalid."""


class PipelineSettings(BaseModel):
    """
    Pipeline settings.

    Attributes:
        backend_url: Base URL of the ledger backend (MOMO_BACKEND_URL)
        api_key: Backend bearer credential (MOMO_API_KEY)
        device_id: Identifier of this capture device (MOMO_DEVICE_ID)
        merchant_code: Merchant code sent with every synced record (MOMO_MERCHANT_CODE)
        country_code: Country used to classify messages (MOMO_COUNTRY_CODE)
        max_retry: Delivery attempts per record (MOMO_MAX_RETRY)
        http_timeout: Per-request timeout in seconds (MOMO_HTTP_TIMEOUT)
        sync_interval_minutes: Interval for the external scheduler (MOMO_SYNC_INTERVAL_MINUTES)
        patterns_path: Provider pattern YAML, bundled file when unset (MOMO_PATTERNS_PATH)
        store: "memory" or "postgres" (MOMO_STORE)
        webhooks_path: Webhook destination YAML (MOMO_WEBHOOKS_PATH)
        metrics_port: Port for the Prometheus endpoint (METRICS_PORT)
    """

    backend_url: str | None = None
    api_key: str = Field("", repr=False)
    device_id: str | None = None
    merchant_code: str | None = None
    country_code: str = Field("RW", pattern=r"^[A-Z]{2}$")
    max_retry: int = Field(3, ge=1, le=100)
    http_timeout: float = Field(30.0, gt=0)
    sync_interval_minutes: int = Field(15, ge=1)
    patterns_path: Path | None = None
    store: Literal["memory", "postgres"] = "memory"
    webhooks_path: Path | None = None
    metrics_port: int | None = Field(None, ge=1, le=65535)

    @field_validator("country_code", "store", mode="before")
    @classmethod
    def normalize_case(cls, v, info):
        if not isinstance(v, str):
            return v
        v = v.strip()
        return v.upper() if info.field_name == "country_code" else v.lower()

    @classmethod
    def from_env(
        cls, env_file: str | Path | None = None, environ: Mapping[str, str] | None = None
    ) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Args:
            env_file: Optional .env file loaded first (existing variables win)
            environ: Mapping to read instead of os.environ

        Returns:
            PipelineSettings

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        env = os.environ if environ is None else environ

        mapping = {
            "backend_url": "MOMO_BACKEND_URL",
            "api_key": "MOMO_API_KEY",
            "device_id": "MOMO_DEVICE_ID",
            "merchant_code": "MOMO_MERCHANT_CODE",
            "country_code": "MOMO_COUNTRY_CODE",
            "max_retry": "MOMO_MAX_RETRY",
            "http_timeout": "MOMO_HTTP_TIMEOUT",
            "sync_interval_minutes": "MOMO_SYNC_INTERVAL_MINUTES",
            "patterns_path": "MOMO_PATTERNS_PATH",
            "store": "MOMO_STORE",
            "webhooks_path": "MOMO_WEBHOOKS_PATH",
            "metrics_port": "METRICS_PORT",
        }
        values = {}
        for field_name, var in mapping.items():
            value = env.get(var)
            if value is not None and value.strip() != "":
                values[field_name] = value.strip()

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid pipeline settings: {e}") from e


def load_webhook_configs(config_path: str | Path) -> list[WebhookConfig]:
    """
    Load webhook destinations from YAML.

    Expected YAML format:
    ```yaml
    webhooks:
      - id: wh_accounting
        name: Accounting ERP
        url: https://erp.example.com/hooks/momo
        phone_number: "+250788000111"
        api_key: key_live_xxx
        hmac_secret: whsec_xxx
        is_active: true
    ```

    Invalid entries are skipped and logged.

    Args:
        config_path: Path to the YAML file

    Returns:
        Valid webhook configurations, in file order

    Raises:
        ConfigError: If the file is missing, unreadable or has no 'webhooks' list
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Webhook configuration file not found: {config_path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read webhook configuration {path}: {e}") from e

    if not isinstance(config, dict) or not isinstance(config.get("webhooks"), list):
        raise ConfigError("Configuration file must contain a 'webhooks' list")

    configs = []
    for idx, entry in enumerate(config["webhooks"]):
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed webhook entry", extra={"index": idx})
            continue
        entry = dict(entry)
        if "id" in entry:
            entry["id"] = str(entry["id"])
        if "phone_number" in entry and entry["phone_number"] is not None:
            entry["phone_number"] = str(entry["phone_number"])
        try:
            configs.append(WebhookConfig(**entry))
        except (ValidationError, TypeError) as e:
            logger.warning(
                "Skipping malformed webhook entry",
                extra={"index": idx, "reason": str(e)},
            )

    return configs
