"""
History and animal-profile stores.

The engine only needs two things from a history store: append a record and
list the current records (newest first). Two backends:
- InMemory*: bounded in-process log / dict, also used in tests
- Supabase*: rows in a Supabase table, through an injected client
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol
import logging
import time

from vetlab.errors import HistoryWriteError, StoreReadError
from vetlab.numeric import safe_parse
from vetlab.records import CalculationRecord

logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 300


class HistoryStore(Protocol):
    def append(self, record: CalculationRecord) -> None: ...

    def list(self) -> List[CalculationRecord]: ...


class AnimalStore(Protocol):
    def get(self, animal_id: str) -> Optional["AnimalProfile"]: ...

    def list(self) -> List["AnimalProfile"]: ...


@dataclass(frozen=True)
class AnimalProfile:
    id: str
    name: str
    species: str
    weight: float
    condition: str = ""

    @classmethod
    def from_raw(
        cls,
        name: str,
        weight: Any,
        species: str = "Dog",
        condition: str = "",
        id: Optional[str] = None,
    ) -> "AnimalProfile":
        """Build a profile from form values; weight is parsed like any numeric field."""
        w = safe_parse(weight)
        if not name or w <= 0:
            raise ValueError("Please enter a valid name and weight.")
        return cls(
            id=id or str(time.time_ns() // 1_000_000),
            name=name,
            species=species,
            weight=w,
            condition=condition,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnimalProfile":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            species=data.get("species") or data.get("type") or "Other",
            weight=safe_parse(data.get("weight")),
            condition=data.get("condition") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------------------------------------
# In-memory backends
# ------------------------------------------------------------

class InMemoryHistoryStore:
    """Newest-first log capped at `max_items`; the oldest entries fall off."""

    def __init__(self, max_items: int = MAX_HISTORY_ITEMS):
        if max_items <= 0:
            raise ValueError("max_items must be > 0")
        self.max_items = max_items
        self._records: List[CalculationRecord] = []

    def append(self, record: CalculationRecord) -> None:
        self._records.insert(0, record)
        del self._records[self.max_items:]

    def list(self) -> List[CalculationRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class InMemoryAnimalStore:
    def __init__(self, profiles: Optional[List[AnimalProfile]] = None):
        self._profiles: Dict[str, AnimalProfile] = {p.id: p for p in profiles or []}

    def get(self, animal_id: str) -> Optional[AnimalProfile]:
        return self._profiles.get(animal_id)

    def list(self) -> List[AnimalProfile]:
        return list(self._profiles.values())

    def upsert(self, profile: AnimalProfile) -> None:
        self._profiles[profile.id] = profile

    def delete(self, animal_id: str) -> None:
        self._profiles.pop(animal_id, None)


# ------------------------------------------------------------
# Supabase backends
# ------------------------------------------------------------

class SupabaseHistoryStore:
    """
    History rows in a Supabase table.

    Columns: formula, type, time, inputs (json), result (json), sentence.
    Capacity is enforced on read (newest `max_items` rows).
    """

    def __init__(self, client: Any, table: str = "calculation_history", max_items: int = MAX_HISTORY_ITEMS):
        self.client = client
        self.table = table
        self.max_items = max_items

    def append(self, record: CalculationRecord) -> None:
        try:
            self.client.table(self.table).insert(record.to_dict()).execute()
        except Exception as e:
            logger.warning("Failed to save history to %s: %s", self.table, e)
            raise HistoryWriteError(f"Failed to save history: {e}", record=record) from e

    def list(self) -> List[CalculationRecord]:
        try:
            resp = (
                self.client.table(self.table)
                .select("*")
                .order("time", desc=True)
                .limit(self.max_items)
                .execute()
            )
        except Exception as e:
            logger.warning("Failed to load history from %s: %s", self.table, e)
            raise StoreReadError(f"Failed to load history: {e}") from e
        return [CalculationRecord.from_dict(row) for row in resp.data or []]


class SupabaseAnimalStore:
    def __init__(self, client: Any, table: str = "animals"):
        self.client = client
        self.table = table

    def _fetch(self, query) -> List[AnimalProfile]:
        try:
            resp = query.execute()
        except Exception as e:
            logger.warning("Failed to load animals from %s: %s", self.table, e)
            raise StoreReadError(f"Failed to load animals: {e}") from e
        return [AnimalProfile.from_dict(row) for row in resp.data or []]

    def get(self, animal_id: str) -> Optional[AnimalProfile]:
        rows = self._fetch(self.client.table(self.table).select("*").eq("id", animal_id).limit(1))
        return rows[0] if rows else None

    def list(self) -> List[AnimalProfile]:
        return self._fetch(self.client.table(self.table).select("*").order("name"))
