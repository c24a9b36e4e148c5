"""
Formula calculators for the VetLab engine.

Each calculator is a pure function:
- Takes the raw form values (strings or numbers) plus the unit choices.
- Parses them with safe_parse(), so a half-filled form is just "incomplete".
- Returns a typed result, or None when the inputs are incomplete.

Used by:
- CalculationEngine.preview / submit_calculation
- Batch CSV runs
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Callable, ClassVar, Dict, Optional, Tuple, Union
import logging
import math

import pandas as pd

from vetlab.numeric import safe_parse
from vetlab.units import (
    CONC_DOSE,
    GENERAL_FAMILIES,
    MASS,
    MOLARITY,
    PERCENT_WV,
    VOLUME,
    UnitRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)

DROP_FACTOR = 20  # drops per mL, standard macro-drip set
MAX_DILUTION_STEPS = 10

RawValue = Union[str, float, int, None]


def _finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


# ------------------------------------------------------------
# Result variants
# ------------------------------------------------------------

@dataclass(frozen=True)
class DoseResult:
    kind: ClassVar[str] = "dose"

    total_dose_mg: float
    volume_needed_ml: float
    ml_per_hour: Optional[float] = None
    drops_per_minute: Optional[float] = None

    @property
    def has_rate(self) -> bool:
        return self.ml_per_hour is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SolutionResult:
    kind: ClassVar[str] = "solution"

    grams_needed: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DilutionStep:
    step: int
    concentration: float


@dataclass(frozen=True)
class DilutionResult:
    kind: ClassVar[str] = "serial_dilution"

    unit: str
    steps: Tuple[DilutionStep, ...]

    @property
    def final_concentration(self) -> float:
        return self.steps[-1].concentration

    def to_frame(self) -> pd.DataFrame:
        """Step/concentration table (what a chart of the series would plot)."""
        return pd.DataFrame(
            [{"step": s.step, "concentration": s.concentration} for s in self.steps],
            columns=["step", "concentration"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_conc": self.final_concentration,
            "unit": self.unit,
            "data": [{"step": s.step, "conc": s.concentration} for s in self.steps],
        }


@dataclass(frozen=True)
class BufferResult:
    kind: ClassVar[str] = "buffer"

    ratio: float
    fraction_acid: float
    fraction_salt: float
    acid_mass_g: float
    salt_mass_g: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConversionResult:
    kind: ClassVar[str] = "unit_conversion"

    converted_value: float
    from_unit: str
    to_unit: str
    family: str
    is_identity: bool = False

    @property
    def recordable(self) -> bool:
        return not self.is_identity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converted_value": self.converted_value,
            "from_unit": self.from_unit,
            "to_unit": self.to_unit,
            "family": self.family,
        }


CalculationResult = Union[DoseResult, SolutionResult, DilutionResult, BufferResult, ConversionResult]


def is_recordable(result: Optional[CalculationResult]) -> bool:
    """True when a result may be written to history."""
    if result is None:
        return False
    return getattr(result, "recordable", True)


# ------------------------------------------------------------
# 1) DOSE & INFUSION RATE
# ------------------------------------------------------------

def _mass_unit(dose_unit: str) -> str:
    # the dose picker may label units per kg ("mg/kg"); the family holds "mg"
    return dose_unit[:-3] if dose_unit.endswith("/kg") else dose_unit


def calc_dose(
    weight: RawValue,
    dose: RawValue,
    conc: RawValue,
    time: RawValue = None,
    dose_unit: str = "mg",
    conc_unit: str = "mg/mL",
    registry: UnitRegistry | None = None,
) -> Optional[DoseResult]:
    """
    Drug dose, volume to draw up and optional infusion rate.

    Parameters
    ----------
    weight : patient weight in kg.
    dose : dose per kg, in `dose_unit` (mass family).
    conc : stock concentration, in `conc_unit` (dose-concentration family).
    time : infusion time in minutes. Rates are only computed when > 0.

    Returns
    -------
    DoseResult, or None if weight, dose or concentration is not > 0.
    """
    reg = registry or default_registry()
    W = safe_parse(weight)
    D = safe_parse(dose)
    C = safe_parse(conc)
    T = safe_parse(time)
    if W <= 0 or D <= 0 or C <= 0:
        return None

    d_mg_per_kg = reg.convert(D, _mass_unit(dose_unit), "mg", MASS)
    c_mg_per_ml = reg.convert(C, conc_unit, "mg/mL", CONC_DOSE)

    total_dose_mg = W * d_mg_per_kg
    volume_ml = total_dose_mg / c_mg_per_ml
    if not _finite(total_dose_mg, volume_ml):
        logger.debug("dose: unit lookup failed (%s, %s)", dose_unit, conc_unit)
        return None

    ml_per_hour = drops_per_minute = None
    if volume_ml > 0 and T > 0:
        ml_per_hour = volume_ml / T * 60
        drops_per_minute = volume_ml * DROP_FACTOR / T

    return DoseResult(
        total_dose_mg=total_dose_mg,
        volume_needed_ml=volume_ml,
        ml_per_hour=ml_per_hour,
        drops_per_minute=drops_per_minute,
    )


# ------------------------------------------------------------
# 2) SOLUTION: GRAMS NEEDED
# ------------------------------------------------------------

def calc_solution(
    mw: RawValue,
    conc: RawValue,
    volume: RawValue,
    conc_unit: str = "M",
    volume_unit: str = "mL",
    registry: UnitRegistry | None = None,
) -> Optional[SolutionResult]:
    """
    Grams of solute for a target concentration and final volume.

    conc_unit: "M", "mM", "uM" or "% w/v". MW (g/mol) is ignored for % w/v,
    where grams = % * V(mL) / 100.
    """
    reg = registry or default_registry()
    MW = safe_parse(mw)
    C = safe_parse(conc)
    V = safe_parse(volume)
    if V <= 0 or C <= 0:
        return None

    if conc_unit == PERCENT_WV:
        v_ml = reg.convert(V, volume_unit, "mL", VOLUME)
        grams = C * v_ml / 100
    else:
        if MW <= 0:
            return None
        c_molar = C if conc_unit == "M" else reg.convert(C, conc_unit, "M", MOLARITY)
        v_l = reg.convert(V, volume_unit, "L", VOLUME)
        grams = c_molar * v_l * MW

    if not _finite(grams):
        logger.debug("solution: unit lookup failed (%s, %s)", conc_unit, volume_unit)
        return None
    return SolutionResult(grams_needed=grams)


# ------------------------------------------------------------
# 3) SERIAL DILUTION
# ------------------------------------------------------------

def calc_serial_dilution(
    start_conc: RawValue,
    dilution_factor: RawValue,
    steps: RawValue,
    conc_unit: str = "M",
    registry: UnitRegistry | None = None,
) -> Optional[DilutionResult]:
    """
    Concentration after each of `steps` serial dilutions.

    Valid for start_conc > 0, dilution_factor > 1 and 0 < steps <= 10.
    Step 0 is the starting concentration; step i is step i-1 / dilution_factor.
    """
    reg = registry or default_registry()
    C0 = safe_parse(start_conc)
    DF = safe_parse(dilution_factor)
    S = safe_parse(steps)
    if C0 <= 0 or DF <= 1 or S <= 0 or S > MAX_DILUTION_STEPS:
        return None
    if conc_unit not in reg.family(MOLARITY):
        logger.debug("serial dilution: unknown unit %r", conc_unit)
        return None

    rows = [DilutionStep(0, C0)]
    current = C0
    for i in range(1, int(S) + 1):
        current /= DF
        rows.append(DilutionStep(i, current))

    return DilutionResult(unit=conc_unit, steps=tuple(rows))


# ------------------------------------------------------------
# 4) BUFFER (HENDERSON–HASSELBALCH)
# ------------------------------------------------------------

def calc_buffer(
    ph: RawValue,
    pka: RawValue,
    mw_acid: RawValue,
    mw_salt: RawValue,
    total_volume: RawValue,
    total_conc: RawValue,
    registry: UnitRegistry | None = None,
) -> Optional[BufferResult]:
    """
    Masses of weak acid (HA) and conjugate salt (A-) for a target pH.

    ratio [A-]/[HA] = 10^(pH - pKa)
    mass = fraction * C (M) * V (L) * MW

    total_volume is in mL, total_conc in M.
    """
    reg = registry or default_registry()
    pH = safe_parse(ph)
    pKa = safe_parse(pka)
    MWa = safe_parse(mw_acid)
    MWs = safe_parse(mw_salt)
    V = safe_parse(total_volume)
    C = safe_parse(total_conc)
    if pKa <= 0 or V <= 0 or C <= 0 or MWa <= 0 or MWs <= 0:
        return None

    try:
        ratio = 10 ** (pH - pKa)
    except OverflowError:
        ratio = math.inf

    if math.isinf(ratio):
        x_salt, x_acid = 1.0, 0.0
    else:
        x_salt = ratio / (1 + ratio)
        x_acid = 1 / (1 + ratio)

    v_l = reg.convert(V, "mL", "L", VOLUME)
    return BufferResult(
        ratio=ratio,
        fraction_acid=x_acid,
        fraction_salt=x_salt,
        acid_mass_g=x_acid * C * v_l * MWa,
        salt_mass_g=x_salt * C * v_l * MWs,
    )


# ------------------------------------------------------------
# 5) GENERIC UNIT CONVERSION
# ------------------------------------------------------------

def calc_conversion(
    value: RawValue,
    from_unit: str,
    to_unit: str,
    family: str = MASS,
    registry: UnitRegistry | None = None,
) -> Optional[ConversionResult]:
    """
    Convert a value within MASS, VOLUME, MOLARITY or TEMP.

    A zero value is incomplete. Converting a unit to itself returns the value
    untouched (is_identity=True) and is never recorded.
    """
    reg = registry or default_registry()
    if family not in GENERAL_FAMILIES:
        logger.debug("conversion: family %r not offered", family)
        return None
    val = safe_parse(value)
    if val == 0:
        return None
    if from_unit == to_unit:
        return ConversionResult(val, from_unit, to_unit, family, is_identity=True)

    conv = reg.lookup(val, from_unit, to_unit, family)
    if not conv.ok or not _finite(conv.value):
        logger.debug("conversion: %s", conv.status.value)
        return None
    return ConversionResult(conv.value, from_unit, to_unit, family)


# ------------------------------------------------------------
# Registry
# ------------------------------------------------------------

CALC_REGISTRY: Dict[str, Callable[..., Optional[CalculationResult]]] = {
    "dose": calc_dose,
    "solution": calc_solution,
    "serial_dilution": calc_serial_dilution,
    "buffer": calc_buffer,
    "unit_conversion": calc_conversion,
}
