"""
Settings, logging and store wiring.

Configuration comes from the environment:
    SUPABASE_URL / SUPABASE_ANON_KEY   Supabase project (optional)
    VETLAB_HISTORY_TABLE               default "calculation_history"
    VETLAB_ANIMALS_TABLE               default "animals"
    VETLAB_MAX_HISTORY_ITEMS           default 300
    VETLAB_LOG_LEVEL                   default "WARNING"

Without Supabase credentials build_engine() falls back to in-memory stores.
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional
import logging
import os

from supabase import Client, create_client

from vetlab.engine import CalculationEngine
from vetlab.errors import ConfigError
from vetlab.stores import (
    MAX_HISTORY_ITEMS,
    InMemoryAnimalStore,
    InMemoryHistoryStore,
    SupabaseAnimalStore,
    SupabaseHistoryStore,
)
from vetlab.units import default_registry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    history_table: str = "calculation_history"
    animals_table: str = "animals"
    max_history_items: int = MAX_HISTORY_ITEMS
    log_level: str = "WARNING"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        raw_max = env.get("VETLAB_MAX_HISTORY_ITEMS", str(MAX_HISTORY_ITEMS))
        try:
            max_items = int(raw_max)
        except ValueError:
            raise ConfigError(f"VETLAB_MAX_HISTORY_ITEMS must be an integer, got {raw_max!r}") from None
        if max_items <= 0:
            raise ConfigError("VETLAB_MAX_HISTORY_ITEMS must be > 0")

        level = env.get("VETLAB_LOG_LEVEL", "WARNING").upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigError(f"Invalid VETLAB_LOG_LEVEL: {level}")

        return cls(
            supabase_url=env.get("SUPABASE_URL") or None,
            supabase_key=env.get("SUPABASE_ANON_KEY") or None,
            history_table=env.get("VETLAB_HISTORY_TABLE", "calculation_history"),
            animals_table=env.get("VETLAB_ANIMALS_TABLE", "animals"),
            max_history_items=max_items,
            log_level=level,
        )


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


@lru_cache(maxsize=None)
def _client(url: str, key: str) -> Client:
    return create_client(url, key)


def get_supabase(settings: Settings) -> Client:
    if not settings.has_supabase:
        raise ConfigError("SUPABASE_URL and SUPABASE_ANON_KEY must both be set")
    return _client(settings.supabase_url, settings.supabase_key)


def build_engine(settings: Optional[Settings] = None) -> CalculationEngine:
    """Engine wired to Supabase when configured, in-memory stores otherwise."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    if settings.has_supabase:
        client = get_supabase(settings)
        history = SupabaseHistoryStore(client, settings.history_table, settings.max_history_items)
        animals = SupabaseAnimalStore(client, settings.animals_table)
        logger.info("Using Supabase stores (%s, %s)", settings.history_table, settings.animals_table)
    else:
        history = InMemoryHistoryStore(settings.max_history_items)
        animals = InMemoryAnimalStore()
        logger.info("Supabase not configured, using in-memory stores")
    return CalculationEngine(registry=default_registry(), history=history, animals=animals)
