"""
Configuration module for context assembly.
Manages environment variables, scheduler timings and hot-reloadable
token allocation settings.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_CATEGORIES: Dict[str, int] = {
    "small": 4000,
    "medium": 16000,
    "large": 32000,
}


@dataclass
class SchedulerConfig:
    """Debounce and retry timings for background builds."""
    debounce_seconds: float = field(
        default_factory=lambda: float(os.getenv("CONTEXT_DEBOUNCE_SECONDS", "10"))
    )
    retry_delay_seconds: float = field(
        default_factory=lambda: float(os.getenv("CONTEXT_RETRY_DELAY_SECONDS", "5"))
    )
    max_attempts: int = 3


@dataclass
class AssemblyConfig:
    """Background build tuning."""
    max_concurrent_extractions: int = field(
        default_factory=lambda: int(os.getenv("CONTEXT_MAX_CONCURRENT_EXTRACTIONS", "4"))
    )
    document_limit: int = 1000
    cleanup_after_hours: int = 24


@dataclass(frozen=True)
class TokenAllocation:
    """Share of a model's window given to each part of a prompt."""
    context_percent: float = 70
    generation_percent: float = 20
    buffer_percent: float = 10


@dataclass(frozen=True)
class ContextSettings:
    """Token budget settings, fetched fresh for every overflow check."""
    model_categories: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_MODEL_CATEGORIES)
    )
    token_allocation: TokenAllocation = field(default_factory=TokenAllocation)
    warning_threshold_percent: float = 85

    def max_tokens_for(self, model_category: str) -> int:
        if model_category not in self.model_categories:
            raise ConfigurationError(f"Unknown model type: {model_category}")
        return self.model_categories[model_category]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextSettings":
        """
        Build settings from a plain dict.

        Accepts ``model_categories`` as either ``{"small": 4000}`` or
        ``{"small": {"max_tokens": 4000}}``.
        """
        try:
            categories = {}
            for name, value in (data.get("model_categories") or DEFAULT_MODEL_CATEGORIES).items():
                max_tokens = value.get("max_tokens") if isinstance(value, dict) else value
                categories[name] = int(max_tokens)

            allocation = data.get("token_allocation") or {}
            settings = cls(
                model_categories=categories,
                token_allocation=TokenAllocation(
                    context_percent=float(allocation.get("context_percent", 70)),
                    generation_percent=float(allocation.get("generation_percent", 20)),
                    buffer_percent=float(allocation.get("buffer_percent", 10)),
                ),
                warning_threshold_percent=float(data.get("warning_threshold_percent", 85)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid context settings: {e}") from e

        settings.validate()
        return settings

    def validate(self) -> None:
        for name, max_tokens in self.model_categories.items():
            if max_tokens <= 0:
                raise ConfigurationError(f"max_tokens for {name} must be positive")
        percent = self.token_allocation.context_percent
        if not 0 < percent <= 100:
            raise ConfigurationError(f"context_percent must be in (0, 100], got {percent}")


class ContextSettingsProvider:
    """
    Hot-reloadable source of ContextSettings.

    Reads an optional JSON file and re-reads it whenever its mtime or size changes.
    In-process overrides (e.g. from an admin screen) win over the file.

    Usage:
        provider = ContextSettingsProvider(path="/etc/context.json")
        settings = provider()
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.Lock()
        self._signature: Optional[Tuple[int, int]] = None
        self._file_settings: Optional[ContextSettings] = None
        self._overrides: Optional[ContextSettings] = None

    def __call__(self) -> ContextSettings:
        return self.get()

    def get(self) -> ContextSettings:
        with self._lock:
            if self._overrides is not None:
                return self._overrides
            self._reload_if_changed()
            return self._file_settings or ContextSettings()

    def update(self, **changes: Any) -> ContextSettings:
        """Override individual settings in process."""
        with self._lock:
            self._reload_if_changed()
            base = self._overrides or self._file_settings or ContextSettings()
            updated = replace(base, **changes)
            updated.validate()
            self._overrides = updated
            logger.info(f"Context settings updated: {sorted(changes)}")
            return updated

    def reset(self) -> None:
        with self._lock:
            self._overrides = None

    def _reload_if_changed(self) -> None:
        if not self.path:
            return
        try:
            stat = os.stat(self.path)
        except OSError:
            logger.warning(f"Context settings file not found: {self.path}, using defaults")
            self._file_settings = None
            self._signature = None
            return

        # mtime alone misses writes within the filesystem's timestamp resolution
        signature = (stat.st_mtime_ns, stat.st_size)
        if signature == self._signature:
            return

        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {self.path}: {e}") from e

        self._file_settings = ContextSettings.from_dict(data)
        self._signature = signature
        logger.info(f"Loaded context settings from {self.path}")


@dataclass
class Settings:
    """Main settings loaded from environment."""

    CONTEXT_SETTINGS_PATH: Optional[str] = field(
        default_factory=lambda: os.getenv("CONTEXT_SETTINGS_PATH")
    )
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)

    def settings_provider(self) -> ContextSettingsProvider:
        return ContextSettingsProvider(path=self.CONTEXT_SETTINGS_PATH)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from LOG_LEVEL."""
    resolved = (level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # basicConfig is a no-op once handlers exist
    logging.getLogger().setLevel(resolved)
