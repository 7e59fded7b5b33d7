"""
Configuration for vendor-intake.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PLUGIN_NAME = "datasette-vendor-catalog"

DEFAULT_THRESHOLD = 70


@dataclass
class ModelConfig:
    """Model runner (OpenAI-compatible chat completion endpoint) configuration."""

    base_url: str = "http://model-runner.docker.internal"
    model: str = "ai/llama3.2:latest"
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout_seconds: float = 60.0
    api_key: str | None = None
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class AdmissionConfig:
    """Catalog admission rules."""

    acceptance_threshold: int = DEFAULT_THRESHOLD


@dataclass
class CatalogStoreConfig:
    """Where approved products are stored."""

    backend: str = "sqlite"  # sqlite, http
    api_base: str = "http://127.0.0.1:8001/-/vendor-catalog"
    timeout_seconds: float = 10.0


@dataclass
class AuditConfig:
    """Evaluation audit log."""

    enabled: bool = True
    agent_version: str = "vendor-intake-0.1"


@dataclass
class EventsConfig:
    """Kafka event publishing for completed evaluations."""

    enabled: bool = False
    bootstrap_servers: str = "localhost:9092"
    topic: str = "product-evaluations"
    client_id: str = "vendor-intake"


@dataclass
class IntakeConfig:
    """Complete vendor-intake configuration."""

    db_path: Path = field(default_factory=lambda: Path("vendor_catalog.db"))
    evaluation_threshold: int = DEFAULT_THRESHOLD

    model: ModelConfig = field(default_factory=ModelConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    catalog: CatalogStoreConfig = field(default_factory=CatalogStoreConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    events: EventsConfig = field(default_factory=EventsConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IntakeConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "db_path" in data:
            config.db_path = Path(data["db_path"])
        if "evaluation_threshold" in data:
            config.evaluation_threshold = int(data["evaluation_threshold"])

        if "model" in data:
            model = data["model"]
            config.model = ModelConfig(
                base_url=model.get("base_url", config.model.base_url),
                model=model.get("model", config.model.model),
                temperature=model.get("temperature", 0.7),
                max_tokens=model.get("max_tokens", 2048),
                timeout_seconds=model.get("timeout_seconds", 60.0),
                api_key=model.get("api_key"),
                api_key_env=model.get("api_key_env"),
            )

        if "admission" in data:
            config.admission = AdmissionConfig(
                acceptance_threshold=int(
                    data["admission"].get("acceptance_threshold", DEFAULT_THRESHOLD)
                ),
            )

        if "catalog" in data:
            catalog = data["catalog"]
            config.catalog = CatalogStoreConfig(
                backend=catalog.get("backend", "sqlite"),
                api_base=catalog.get("api_base", config.catalog.api_base),
                timeout_seconds=catalog.get("timeout_seconds", 10.0),
            )

        if "audit" in data:
            audit = data["audit"]
            config.audit = AuditConfig(
                enabled=audit.get("enabled", True),
                agent_version=audit.get("agent_version", config.audit.agent_version),
            )

        if "events" in data:
            events = data["events"]
            config.events = EventsConfig(
                enabled=events.get("enabled", False),
                bootstrap_servers=events.get("bootstrap_servers", "localhost:9092"),
                topic=events.get("topic", "product-evaluations"),
                client_id=events.get("client_id", "vendor-intake"),
            )

        return config

    @classmethod
    def from_plugin_config(cls, plugin_config: dict[str, Any] | None) -> "IntakeConfig":
        """Create config from the plugin section of datasette.yaml."""
        plugin_config = plugin_config or {}
        config = cls.from_dict(plugin_config.get("intake", {}))

        # The plugin-level db path wins over the intake default
        if "catalog_db_path" in plugin_config and "db_path" not in plugin_config.get(
            "intake", {}
        ):
            config.db_path = Path(plugin_config["catalog_db_path"])

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "IntakeConfig":
        """Load config from a YAML file (datasette.yaml format)."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_plugin_config(data.get("plugins", {}).get(PLUGIN_NAME, {}))

    def apply_env(self, environ: Mapping[str, str] | None = None) -> "IntakeConfig":
        """
        Apply environment overrides on top of file or plugin values.

        Invalid numeric values are logged and ignored.
        """
        env = os.environ if environ is None else environ

        self.evaluation_threshold = _env_int(
            env, "VENDOR_EVALUATION_THRESHOLD", self.evaluation_threshold
        )
        self.admission.acceptance_threshold = _env_int(
            env, "ACCEPTANCE_THRESHOLD", self.admission.acceptance_threshold
        )

        if env.get("MODEL_RUNNER_URL"):
            self.model.base_url = env["MODEL_RUNNER_URL"]
        model_name = env.get("MODEL_RUNNER_MODEL") or env.get("AI_DEFAULT_MODEL")
        if model_name:
            self.model.model = model_name
        self.model.timeout_seconds = _env_float(
            env, "MODEL_RUNNER_TIMEOUT", self.model.timeout_seconds
        )

        if env.get("CATALOG_API_URL"):
            self.catalog.backend = "http"
            self.catalog.api_base = env["CATALOG_API_URL"]
        self.catalog.timeout_seconds = _env_float(
            env, "CATALOG_TIMEOUT", self.catalog.timeout_seconds
        )

        if env.get("KAFKA_BROKERS"):
            self.events.enabled = True
            self.events.bootstrap_servers = env["KAFKA_BROKERS"]

        if env.get("VENDOR_CATALOG_DB"):
            self.db_path = Path(env["VENDOR_CATALOG_DB"])

        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {
            "db_path": str(self.db_path),
            "evaluation_threshold": self.evaluation_threshold,
            "model": {
                "base_url": self.model.base_url,
                "model": self.model.model,
                "temperature": self.model.temperature,
                "max_tokens": self.model.max_tokens,
                "timeout_seconds": self.model.timeout_seconds,
            },
            "admission": {
                "acceptance_threshold": self.admission.acceptance_threshold,
            },
            "catalog": {
                "backend": self.catalog.backend,
                "api_base": self.catalog.api_base,
                "timeout_seconds": self.catalog.timeout_seconds,
            },
            "audit": {"enabled": self.audit.enabled},
            "events": {
                "enabled": self.events.enabled,
                "topic": self.events.topic,
            },
        }


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer")
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not a number")
        return default
