"""
Config Manager for the OpenURL gateway.

Loads the YAML configuration file and answers per-service lookups.

Layering:
- Top-level keys configure the default service and act as defaults
- `services.<symbol>` overrides them for one service symbol
- `service_values(symbol)` returns the merged, validated ServiceConfig
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from openurl_gateway.services.pipeline_errors import ConfigError

load_dotenv()


# =============================================================================
# CONFIGURATION
# =============================================================================

CONFIG_PATH = os.getenv("OPENURL_CONFIG", "")
DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

# Keys that are meaningful per service; everything else is process-wide.
SERVICE_KEYS = {
    "okapi_url",
    "tenant",
    "username",
    "password",
    "digital_only",
    "req_id_header",
    "id_transform",
    "pickup_locations_path",
}


# =============================================================================
# MODELS
# =============================================================================

class IdTransform(BaseModel):
    """Rule for canonicalizing a requester id asserted by a trusted header."""
    regex: Optional[str] = None
    replacement: str = ""
    case: Optional[str] = Field(default=None, pattern="^(lower|upper)$")

    model_config = ConfigDict(extra="forbid")


class ServiceConfig(BaseModel):
    """Effective configuration for one downstream service."""
    okapi_url: Optional[str] = None
    tenant: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    digital_only: bool = False
    req_id_header: Optional[str] = None
    id_transform: Optional[IdTransform] = None
    pickup_locations_path: str = "/directory/entry"

    model_config = ConfigDict(extra="ignore")


class ConfigManager:
    """
    Holds the loaded configuration for the lifetime of the process.

    Usage:
        cfg = ConfigManager.from_file("config/openurl.yaml")
        svc = cfg.service_values("ISIL:US-ABC")
    """

    def __init__(self, values: Dict[str, Any], path: Optional[Path] = None) -> None:
        self.path = path.parent if path else Path.cwd()
        self._values = values or {}

        if not self._values.get("doc_root"):
            raise ConfigError("No doc_root defined in configuration")

        services = self._values.get("services") or {}
        if not isinstance(services, dict):
            raise ConfigError("'services' must be a mapping of symbol to settings")
        self._services: Dict[str, Dict[str, Any]] = services

        if not self._values.get("password") and os.getenv("OKAPI_PASSWORD"):
            self._values["password"] = os.getenv("OKAPI_PASSWORD")

        # Validate every service up front so a bad entry fails at startup
        for symbol in self.symbols():
            self.service_values(symbol)

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> "ConfigManager":
        """Load and validate a YAML configuration file."""
        path = Path(config_path or CONFIG_PATH)
        if not config_path and not CONFIG_PATH:
            raise ConfigError("No configuration file given (set OPENURL_CONFIG)")
        if not path.exists():
            raise ConfigError(f"Config file not found at {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return cls(data, path)

    # -------------------------------------------------------------------------
    # Process-wide values
    # -------------------------------------------------------------------------

    @property
    def doc_root(self) -> Path:
        return self.path / self._values["doc_root"]

    @property
    def template_dir(self) -> Path:
        template_dir = self._values.get("template_dir")
        if template_dir:
            return self.path / template_dir
        return DEFAULT_TEMPLATE_DIR

    @property
    def has_default_service(self) -> bool:
        return bool(self._values.get("okapi_url"))

    @property
    def allow_fault_injection(self) -> bool:
        return bool(self._values.get("allow_fault_injection", False))

    @property
    def request_timeout(self) -> float:
        return float(self._values.get("request_timeout", 30.0))

    @property
    def requester_namespace(self) -> str:
        return self._values.get("requester_namespace", "RESHARE")

    # -------------------------------------------------------------------------
    # Per-service values
    # -------------------------------------------------------------------------

    def symbols(self) -> List[str]:
        """Configured service symbols (the default service is not listed)."""
        return list(self._services.keys())

    def service_values(self, symbol: str) -> ServiceConfig:
        """
        Merge top-level defaults with the overrides for `symbol`.

        Unknown symbols get the top-level values alone.
        """
        merged = {k: v for k, v in self._values.items() if k in SERVICE_KEYS}
        merged.update(self._services.get(symbol) or {})
        try:
            return ServiceConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration for service '{symbol}': {e}") from e
