"""LLM routes and session tuning loaded from ``app_config.json``."""
from __future__ import annotations

from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field, model_validator


class LlmRoute(BaseModel):
    """Chat-completions endpoint used by one oracle."""

    name: str
    base_url: str
    endpoint: str
    model: str
    timeout_s: float = Field(ge=0.1)
    max_retries: int = Field(default=2, ge=0)
    api_key_env: str | None = None
    response_format: str | None = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    sequential: bool = False
    enforce_json: bool = True

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.endpoint.lstrip("/")


class SessionSettings(BaseModel):  # Interview session tuning
    decision_timeout_s: float = Field(default=20.0, gt=0.0)
    save_attempts: int = Field(default=1, ge=1)


class AppConfig(BaseModel):
    """Routes, the oracle registry and session tuning."""

    llm_routes: Dict[str, LlmRoute]
    registry: Dict[str, str]
    session: SessionSettings = Field(default_factory=SessionSettings)

    @model_validator(mode="after")
    def _check_registry(self) -> "AppConfig":
        missing = sorted(route for route in self.registry.values() if route not in self.llm_routes)
        if missing:
            raise ValueError(f"registry references unknown routes: {', '.join(missing)}")
        return self


def load_config(path: Path) -> AppConfig:
    """Load configuration from disk."""

    data = Path(path).read_text(encoding="utf-8")
    return AppConfig.model_validate_json(data)


def resolve_route(cfg: AppConfig, target: str) -> LlmRoute:
    """Return the route bound to ``target`` in the registry."""

    if target not in cfg.registry:
        raise KeyError(f"Registry entry missing for '{target}'")
    return cfg.llm_routes[cfg.registry[target]]
