"""
Unit conversion registry.

Unit families:
- MASS       base g
- VOLUME     base L
- MOLARITY   base M
- CONC_DOSE  base mg/mL (includes % w/v: 1 g / 100 mL = 10 mg/mL)
- TEMP       non-linear, pivots through Celsius

Linear families convert with a single factor per unit:
    result = value * factor[from_unit] / factor[to_unit]

The registry is built once (default_registry()) and handed to calculators
explicitly; nothing here mutates after construction.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import math

from vetlab.errors import UnitNotFoundError, UnknownFamilyError

logger = logging.getLogger(__name__)

MASS = "MASS"
VOLUME = "VOLUME"
MOLARITY = "MOLARITY"
TEMP = "TEMP"
CONC_DOSE = "CONC_DOSE"

PERCENT_WV = "% w/v"
PERCENT_WV_MG_PER_ML = 10.0  # 1% w/v = 1 g / 100 mL = 10 mg/mL

# families offered by the generic conversion calculator
GENERAL_FAMILIES: Tuple[str, ...] = (MASS, VOLUME, MOLARITY, TEMP)


class ConversionStatus(str, Enum):
    OK = "ok"
    UNKNOWN_FAMILY = "unknown_family"
    UNKNOWN_UNIT = "unknown_unit"


@dataclass(frozen=True)
class Conversion:
    """Outcome of a registry lookup: the number plus how it was obtained."""

    value: float
    status: ConversionStatus = ConversionStatus.OK
    missing_unit: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ConversionStatus.OK


@dataclass(frozen=True, eq=False)
class UnitFamily:
    """
    A named group of commensurable units.

    Linear families carry `factors` (multiplier to the base unit). Non-linear
    families carry `to_base` / `from_base` functions keyed by unit.
    """

    name: str
    label: str
    base_unit: str
    factors: Mapping[str, float] = field(default_factory=dict)
    to_base: Mapping[str, Callable[[float], float]] = field(default_factory=dict)
    from_base: Mapping[str, Callable[[float], float]] = field(default_factory=dict)

    def __post_init__(self):
        if self.linear:
            if self.factors.get(self.base_unit) != 1:
                raise ValueError(f"{self.name}: base unit {self.base_unit!r} must have factor 1")
        elif set(self.to_base) != set(self.from_base):
            raise ValueError(f"{self.name}: to_base and from_base must cover the same units")
        object.__setattr__(self, "factors", MappingProxyType(dict(self.factors)))
        object.__setattr__(self, "to_base", MappingProxyType(dict(self.to_base)))
        object.__setattr__(self, "from_base", MappingProxyType(dict(self.from_base)))

    @property
    def linear(self) -> bool:
        return bool(self.factors)

    @property
    def units(self) -> Tuple[str, ...]:
        return tuple(self.factors) if self.linear else tuple(self.to_base)

    def __contains__(self, unit: object) -> bool:
        return unit in self.units

    def convert(self, value: float, from_unit: str, to_unit: str) -> Conversion:
        if from_unit == to_unit and from_unit in self:
            return Conversion(value)
        if self.linear:
            return self._convert_linear(value, from_unit, to_unit)
        return self._convert_pivot(value, from_unit, to_unit)

    def _convert_linear(self, value: float, from_unit: str, to_unit: str) -> Conversion:
        for unit in (from_unit, to_unit):
            if unit not in self.factors:
                logger.debug("unit %r not in %s, result is NaN", unit, self.name)
                return Conversion(math.nan, ConversionStatus.UNKNOWN_UNIT, unit)
        return Conversion(value * self.factors[from_unit] / self.factors[to_unit])

    def _convert_pivot(self, value: float, from_unit: str, to_unit: str) -> Conversion:
        # unknown units read as the pivot itself (identity on that side)
        missing = next((u for u in (from_unit, to_unit) if u not in self.to_base), None)
        base = self.to_base.get(from_unit, _identity)(value)
        result = self.from_base.get(to_unit, _identity)(base)
        if missing is not None:
            logger.debug("unit %r not in %s, treated as %s", missing, self.name, self.base_unit)
            return Conversion(result, ConversionStatus.UNKNOWN_UNIT, missing)
        return Conversion(result)


def _identity(v: float) -> float:
    return v


@dataclass(frozen=True)
class Quantity:
    """A value tied to a unit of one family. Immutable."""

    value: float
    unit: str
    family: UnitFamily

    def __post_init__(self):
        if self.unit not in self.family:
            raise UnitNotFoundError(self.unit, self.family.name)

    def to(self, unit: str) -> "Quantity":
        if unit not in self.family:
            raise UnitNotFoundError(unit, self.family.name)
        if unit == self.unit:
            return self
        return Quantity(self.family.convert(self.value, self.unit, unit).value, unit, self.family)


# ------------------------------------------------------------
# Fixed unit table
# ------------------------------------------------------------

def _build_families() -> List[UnitFamily]:
    return [
        UnitFamily(
            name=MASS,
            label="Mass (kg, g, mg, µg)",
            base_unit="g",
            factors={"kg": 1000.0, "g": 1.0, "mg": 1e-3, "ug": 1e-6},
        ),
        UnitFamily(
            name=VOLUME,
            label="Volume (L, mL, uL)",
            base_unit="L",
            factors={"L": 1.0, "mL": 1e-3, "uL": 1e-6},
        ),
        UnitFamily(
            name=MOLARITY,
            label="Molarity (M, mM, µM)",
            base_unit="M",
            factors={"M": 1.0, "mM": 1e-3, "uM": 1e-6},
        ),
        UnitFamily(
            name=TEMP,
            label="Temperature (°C, °F, K)",
            base_unit="C",
            to_base={
                "C": _identity,
                "F": lambda v: (v - 32) * 5 / 9,
                "K": lambda v: v - 273.15,
            },
            from_base={
                "C": _identity,
                "F": lambda c: c * 9 / 5 + 32,
                "K": lambda c: c + 273.15,
            },
        ),
        UnitFamily(
            name=CONC_DOSE,
            label="Dose concentration (mg/mL, g/L, mcg/mL, % w/v)",
            base_unit="mg/mL",
            factors={"mg/mL": 1.0, "g/L": 1.0, "mcg/mL": 1e-3, PERCENT_WV: PERCENT_WV_MG_PER_ML},
        ),
    ]


class UnitRegistry:
    """Lookup and conversion across a fixed set of unit families."""

    def __init__(self, families: Iterable[UnitFamily]):
        self._families: Dict[str, UnitFamily] = {}
        for fam in families:
            if fam.name in self._families:
                raise ValueError(f"Duplicate unit family: {fam.name}")
            self._families[fam.name] = fam

    @classmethod
    def default(cls) -> "UnitRegistry":
        return cls(_build_families())

    def families(self) -> List[str]:
        return list(self._families)

    def family(self, name: str) -> UnitFamily:
        try:
            return self._families[name]
        except KeyError:
            raise UnknownFamilyError(name) from None

    def units(self, family: str) -> List[str]:
        return list(self.family(family).units)

    def lookup(self, value: float, from_unit: str, to_unit: str, family: str) -> Conversion:
        fam = self._families.get(family)
        if fam is None:
            return Conversion(value, ConversionStatus.UNKNOWN_FAMILY)
        return fam.convert(value, from_unit, to_unit)

    def convert(self, value: float, from_unit: str, to_unit: str, family: str) -> float:
        """
        Convert within a family.

        Permissive: an unknown family returns `value` unchanged and an unknown
        unit in a linear family returns NaN. Use convert_strict() to get
        exceptions instead.
        """
        return self.lookup(value, from_unit, to_unit, family).value

    def convert_strict(self, value: float, from_unit: str, to_unit: str, family: str) -> float:
        conv = self.lookup(value, from_unit, to_unit, family)
        if conv.status is ConversionStatus.UNKNOWN_FAMILY:
            raise UnknownFamilyError(family)
        if conv.status is ConversionStatus.UNKNOWN_UNIT:
            raise UnitNotFoundError(conv.missing_unit, family)
        return conv.value

    def quantity(self, value: float, unit: str, family: str) -> Quantity:
        return Quantity(value, unit, self.family(family))


@lru_cache(maxsize=None)
def default_registry() -> UnitRegistry:
    """Process-wide registry with the fixed unit table."""
    return UnitRegistry.default()


def convert(value: float, from_unit: str, to_unit: str, family: str) -> float:
    """Standalone conversion through the default registry."""
    return default_registry().convert(value, from_unit, to_unit, family)
