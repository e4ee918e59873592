"""Configuration loader for Escalade."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "escalade" / "config.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def user_config_path() -> Path:
    override = os.getenv("ESCALADE_CONFIG")
    return Path(override).expanduser() if override else USER_CONFIG_PATH


def load_config(
    default_path: Path | None = None,
    user_path: Path | None = None,
) -> Dict[str, Any]:
    default_path = default_path or DEFAULT_CONFIG_PATH
    user_path = user_path or user_config_path()
    data: Dict[str, Any] = {}
    if default_path.exists():
        data = yaml.safe_load(default_path.read_text()) or {}
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Server
    host = os.getenv("ESCALADE_HOST")
    port = os.getenv("ESCALADE_PORT")
    if host:
        data.setdefault("server", {})["host"] = host
    if port:
        try:
            data.setdefault("server", {})["port"] = int(port)
        except ValueError:
            pass

    # Environment overrides - Backend
    ollama_url = os.getenv("ESCALADE_OLLAMA_URL")
    if ollama_url:
        data.setdefault("ollama", {})["base_url"] = ollama_url

    request_timeout = os.getenv("ESCALADE_REQUEST_TIMEOUT")
    if request_timeout:
        try:
            data.setdefault("ollama", {})["request_timeout_seconds"] = float(request_timeout)
        except ValueError:
            pass

    # Environment overrides - Orchestration
    run_timeout = os.getenv("ESCALADE_RUN_TIMEOUT")
    if run_timeout:
        try:
            data.setdefault("orchestration", {})["run_timeout_seconds"] = float(run_timeout)
        except ValueError:
            pass

    # Environment overrides - Logging and audit
    log_level = os.getenv("ESCALADE_LOG_LEVEL")
    if log_level:
        data["log_level"] = log_level.upper()

    audit_path = os.getenv("ESCALADE_AUDIT_PATH")
    if audit_path:
        data.setdefault("audit", {})["path"] = audit_path

    return data


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {}) or {}

    @property
    def host(self) -> str:
        return str(self.server.get("host", "127.0.0.1"))

    @property
    def port(self) -> int:
        return int(self.server.get("port", 4000))

    @property
    def stream_status(self) -> bool:
        """Emit pipeline status events ahead of the answer on streamed replies."""
        return bool(self.server.get("stream_status", False))

    @property
    def ollama(self) -> Dict[str, Any]:
        return self.raw.get("ollama", {}) or {}

    @property
    def models(self) -> Dict[str, Any]:
        return self.raw.get("models", {}) or {}

    @property
    def orchestration(self) -> Dict[str, Any]:
        return self.raw.get("orchestration", {}) or {}

    @property
    def max_retries(self) -> int:
        return int(self.orchestration.get("max_retries", 2))

    @property
    def max_attempts(self) -> int:
        return int(self.orchestration.get("max_attempts", 2))

    @property
    def min_confidence(self) -> float:
        return float(self.orchestration.get("min_confidence", 0.75))

    @property
    def ladder(self) -> List[str]:
        return [str(name) for name in (self.orchestration.get("ladder") or []) if name]

    @property
    def run_timeout_seconds(self) -> Optional[float]:
        """Deadline for a whole session. None leaves sessions unbounded."""
        value = self.orchestration.get("run_timeout_seconds")
        return float(value) if value else None

    @property
    def grounding(self) -> Dict[str, Any]:
        return self.raw.get("grounding", {}) or {}

    @property
    def grounding_enabled(self) -> bool:
        return bool(self.grounding.get("enabled", False))

    @property
    def grounding_threshold(self) -> float:
        return float(self.grounding.get("threshold", 0.75))

    @property
    def grounding_store_path(self) -> Path:
        path = self.grounding.get("store_path")
        return Path(path).expanduser() if path else Path.home() / ".escalade" / "embeddings.db"

    @property
    def audit_path(self) -> Path | None:
        path = (self.raw.get("audit", {}) or {}).get("path")
        return Path(path).expanduser() if path else None

    @property
    def log_level(self) -> str:
        return str(self.raw.get("log_level", "INFO")).upper()


def get_config() -> Config:
    return Config(load_config())
