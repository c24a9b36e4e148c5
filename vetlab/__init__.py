"""VetLab: veterinary dose, solution, dilution, buffer and unit calculations."""

from vetlab.calculators import (
    CALC_REGISTRY,
    BufferResult,
    ConversionResult,
    DilutionResult,
    DilutionStep,
    DoseResult,
    SolutionResult,
    calc_buffer,
    calc_conversion,
    calc_dose,
    calc_serial_dilution,
    calc_solution,
)
from vetlab.engine import CalculationEngine
from vetlab.numeric import filter_keystroke, fmt, parse_number, safe_parse
from vetlab.records import CalculationRecord, build_record
from vetlab.stores import AnimalProfile
from vetlab.units import UnitRegistry, convert, default_registry

__version__ = "0.1.0"
