"""Shared fixtures: unit registry, fixed clock, engine and a fake Supabase client."""

from datetime import datetime, timezone

import pytest

from vetlab.engine import CalculationEngine
from vetlab.stores import AnimalProfile, InMemoryAnimalStore, InMemoryHistoryStore
from vetlab.units import UnitRegistry

FIXED_TIME = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


# ─── Fake Supabase client ─────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable stand-in for the postgrest query builder."""

    def __init__(self, table):
        self._table = table
        self._insert = None
        self._filters = []
        self._order = None
        self._limit = None

    def insert(self, row):
        self._insert = row
        return self

    def select(self, *columns):
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def execute(self):
        if self._table.fail:
            raise RuntimeError("connection refused")
        if self._insert is not None:
            self._table.rows.append(self._insert)
            return FakeResponse([self._insert])
        rows = [r for r in self._table.rows if all(r.get(c) == v for c, v in self._filters)]
        if self._order is not None:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: r[column], reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        return FakeResponse(rows)


class FakeTable:
    def __init__(self):
        self.rows = []
        self.fail = False


class FakeSupabase:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return FakeQuery(self.tables.setdefault(name, FakeTable()))


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def registry():
    return UnitRegistry.default()


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def rex():
    return AnimalProfile(id="a1", name="Rex", species="Dog", weight=12.5, condition="Post-Op")


@pytest.fixture
def history():
    return InMemoryHistoryStore()


@pytest.fixture
def engine(registry, history, rex):
    return CalculationEngine(
        registry=registry,
        history=history,
        animals=InMemoryAnimalStore([rex]),
        clock=lambda: FIXED_TIME,
    )
