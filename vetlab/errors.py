"""
Exceptions raised by the VetLab calculation engine.

Incomplete input is never an exception: calculators return ``None`` for it.
Everything here is for misuse of the API or failures of the stores.
"""

from __future__ import annotations
from typing import Any


class VetLabError(Exception):
    """Base class for all VetLab errors."""


class ConfigError(VetLabError):
    """Missing or malformed configuration value."""


class UnknownFormulaError(VetLabError, KeyError):
    def __init__(self, formula: str):
        super().__init__(formula)
        self.formula = formula

    def __str__(self) -> str:
        return f"Unknown formula: {self.formula}"


class UnknownFamilyError(VetLabError, KeyError):
    def __init__(self, family: str):
        super().__init__(family)
        self.family = family

    def __str__(self) -> str:
        return f"Unknown unit family: {self.family}"


class UnitNotFoundError(VetLabError, KeyError):
    def __init__(self, unit: str, family: str):
        super().__init__(unit)
        self.unit = unit
        self.family = family

    def __str__(self) -> str:
        return f"Unit {self.unit!r} is not part of the {self.family} family"


class HistoryWriteError(VetLabError):
    """
    The history store rejected a record.

    The record that failed to save is kept on ``record`` so callers can still
    show the computed result.
    """

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


class StoreReadError(VetLabError):
    """Reading records or animal profiles from a store failed."""


class EmptyHistoryError(VetLabError):
    """Export requested for an empty history."""
