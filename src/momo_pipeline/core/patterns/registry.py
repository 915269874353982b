"""
Provider pattern registry.

Loads per-country, per-provider SMS extraction rules from YAML and resolves
the provider for an inbound message by (country code, sender id).
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import ValidationError

from momo_pipeline.core.models import ProviderPattern
from momo_pipeline.errors import PatternConfigError
from momo_pipeline.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PATTERNS_PATH = Path(__file__).with_name("default_patterns.yaml")


class PatternConfigLoader:
    """
    Loads provider patterns from YAML configuration files.

    Expected YAML format:
    ```yaml
    countries:
      RW:
        providers:
          - provider_code: MTN
            provider_name: MTN Mobile Money
            currency: RWF
            sender_ids: ["M-Money", "MTN"]
            received_pattern: 'received\\s+(?P<amount>[\\d,]+)\\s+from\\s+(?P<party>.+)'
            sent_pattern: 'sent\\s+(?P<amount>[\\d,]+)\\s+to\\s+(?P<party>.+)'
            balance_pattern: 'balance\\s*:?\\s*([\\d,]+)'
    ```

    Entries that fail validation (bad regex, missing fields) are skipped and
    logged; only an unreadable file is an error.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the pattern config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise PatternConfigError(f"Pattern configuration file not found: {config_path}")
        self.skipped: list[str] = []

    def load_patterns(self) -> list[ProviderPattern]:
        """
        Load and parse provider patterns from the YAML file.

        Returns:
            List of valid ProviderPattern entries, in file order

        Raises:
            PatternConfigError: If the file is not valid YAML or has no 'countries' section
        """
        try:
            with open(self.config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise PatternConfigError(f"Cannot read pattern configuration {self.config_path}: {e}") from e

        if not isinstance(config, dict) or "countries" not in config:
            raise PatternConfigError("Configuration file must contain 'countries' section")

        return self.parse_countries(config["countries"] or {})

    def parse_countries(self, countries: dict[str, Any]) -> list[ProviderPattern]:
        """Parse a {country_code: {providers: [...]}} mapping."""
        patterns = []
        for country_code, country_def in countries.items():
            providers = (country_def or {}).get("providers") if isinstance(country_def, dict) else None
            if not isinstance(providers, list):
                self._skip(f"{country_code}: 'providers' must be a list")
                continue

            for idx, provider_def in enumerate(providers):
                pattern = self._parse_provider(str(country_code), provider_def, idx)
                if pattern is not None:
                    patterns.append(pattern)

        return patterns

    def _parse_provider(self, country_code: str, provider_def: Any, idx: int) -> ProviderPattern | None:
        if not isinstance(provider_def, dict):
            self._skip(f"{country_code}[{idx}]: provider entry must be a mapping")
            return None

        try:
            return ProviderPattern(country_code=country_code, **provider_def)
        except (ValidationError, TypeError) as e:
            label = provider_def.get("provider_code", idx)
            self._skip(f"{country_code}/{label}: {e}")
            return None

    def _skip(self, reason: str) -> None:
        self.skipped.append(reason)
        logger.warning(
            "Skipping malformed provider pattern entry",
            extra={"reason": reason, "config_path": str(self.config_path)},
        )


class PatternRegistry:
    """
    Read-only lookup of provider patterns by country.

    Built once at startup; lookups never mutate state, so one instance can be
    shared by concurrent workers.
    """

    def __init__(self, patterns: list[ProviderPattern]):
        """
        Initialize the registry.

        Args:
            patterns: Provider patterns; inactive entries are ignored
        """
        by_country: dict[str, list[ProviderPattern]] = {}
        for pattern in patterns:
            if not pattern.is_active:
                continue
            by_country.setdefault(pattern.country_code, []).append(pattern)

        self._by_country = MappingProxyType(
            {code: tuple(items) for code, items in by_country.items()}
        )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "PatternRegistry":
        return cls(PatternConfigLoader(config_path).load_patterns())

    @classmethod
    def default(cls) -> "PatternRegistry":
        """Registry built from the patterns bundled with the package."""
        return cls.from_yaml(DEFAULT_PATTERNS_PATH)

    def detect_provider(self, country_code: str, sender_id: str) -> ProviderPattern | None:
        """
        Resolve the provider for a message.

        Args:
            country_code: ISO 3166 alpha-2 code of the receiving device
            sender_id: SMS sender address

        Returns:
            The first active provider of the country whose aliases match the
            sender, or None
        """
        if not country_code or not sender_id:
            return None

        for pattern in self._by_country.get(country_code.strip().upper(), ()):
            if pattern.matches_sender(sender_id):
                return pattern
        return None

    def providers_for(self, country_code: str) -> tuple[ProviderPattern, ...]:
        return self._by_country.get(country_code.strip().upper(), ())

    def countries(self) -> list[str]:
        return sorted(self._by_country)

    def __len__(self) -> int:
        return sum(len(items) for items in self._by_country.values())
