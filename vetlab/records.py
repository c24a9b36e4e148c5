"""
Calculation records: what gets handed to the history store.

- build_record():   package inputs + result + one-line summary
- summarize():      the summary sentence, built from the *raw* input strings
- search_records(): history search (type, sentence, inputs)
- suggest_next():   next-step suggestion from the newest record
- export_rows() / to_csv(): spreadsheet export of the history log
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import json
import math

import pandas as pd

from vetlab.calculators import (
    BufferResult,
    CalculationResult,
    ConversionResult,
    DilutionResult,
    DilutionStep,
    DoseResult,
    SolutionResult,
)
from vetlab.errors import EmptyHistoryError, UnknownFormulaError
from vetlab.numeric import fmt
from vetlab.units import default_registry

RECORD_TYPES: Dict[str, str] = {
    "dose": "Dose Calculation",
    "solution": "Solution Calculation",
    "serial_dilution": "Serial Dilution",
    "buffer": "Buffer Calculation",
    "unit_conversion": "Unit Conversion",
}

EXPORT_COLUMNS = ["Type", "Time", "Input Values", "Result Values", "Summary"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(ts: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix (2026-01-01T08:30:00.000Z)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def _json_safe(value: Any) -> Any:
    # JSON has no NaN/Infinity; they export as null
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def to_json(value: Any) -> str:
    return json.dumps(_json_safe(value), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class CalculationRecord:
    formula: str
    timestamp: datetime
    inputs: Dict[str, Any]
    result: CalculationResult
    sentence: str
    type: str = field(default="")

    def __post_init__(self):
        if not self.type:
            object.__setattr__(self, "type", RECORD_TYPES.get(self.formula, self.formula))

    @property
    def time(self) -> str:
        return iso_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "formula": self.formula,
            "type": self.type,
            "time": self.time,
            "inputs": dict(self.inputs),
            "result": _json_safe(self.result.to_dict()),
            "sentence": self.sentence,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CalculationRecord":
        formula = data["formula"]
        return cls(
            formula=formula,
            timestamp=parse_timestamp(data["time"]),
            inputs=dict(data.get("inputs") or {}),
            result=result_from_dict(formula, data.get("result") or {}),
            sentence=data.get("sentence") or "",
            type=data.get("type") or "",
        )


def result_from_dict(formula: str, data: Mapping[str, Any]) -> CalculationResult:
    """Rebuild a result variant from its stored JSON shape."""
    if formula == "dose":
        return DoseResult(**data)
    if formula == "solution":
        return SolutionResult(**data)
    if formula == "serial_dilution":
        steps = tuple(DilutionStep(int(row["step"]), row["conc"]) for row in data["data"])
        return DilutionResult(unit=data.get("unit", "M"), steps=steps)
    if formula == "buffer":
        return BufferResult(**{k: math.inf if v is None else v for k, v in data.items()})
    if formula == "unit_conversion":
        return ConversionResult(
            converted_value=data["converted_value"],
            from_unit=data.get("from_unit", ""),
            to_unit=data.get("to_unit", ""),
            family=data.get("family", ""),
        )
    raise UnknownFormulaError(formula)


# ------------------------------------------------------------
# Summary sentences
# ------------------------------------------------------------

def _dose_sentence(inputs: Mapping[str, Any], result: DoseResult) -> str:
    animal = inputs.get("animal_name") or "Unknown Animal"
    rate = result.ml_per_hour if result.ml_per_hour is not None else 0
    return (
        f"Dose for {animal} ({inputs.get('weight', '')}kg): {fmt(result.total_dose_mg)} mg required, "
        f"volume {fmt(result.volume_needed_ml)} mL from {inputs.get('conc', '')} "
        f"{inputs.get('conc_unit', 'mg/mL')} stock. Infusion rate: {fmt(rate)} mL/hr."
    )


def _solution_sentence(inputs: Mapping[str, Any], result: SolutionResult) -> str:
    return (
        f"To make a solution of {inputs.get('conc', '')} {inputs.get('conc_unit', 'M')} in "
        f"{inputs.get('volume', '')} {inputs.get('volume_unit', 'mL')} (MW: {inputs.get('mw', '')}), "
        f"{fmt(result.grams_needed)} grams are needed."
    )


def _dilution_sentence(inputs: Mapping[str, Any], result: DilutionResult) -> str:
    unit = inputs.get("conc_unit", result.unit)
    return (
        f"Serial dilution of {inputs.get('start_conc', '')} {unit} with factor "
        f"{inputs.get('dilution_factor', '')} for {inputs.get('steps', '')} steps. "
        f"Final concentration: {fmt(result.final_concentration)} {unit}."
    )


def _buffer_sentence(inputs: Mapping[str, Any], result: BufferResult) -> str:
    return (
        f"Buffer calculated: Ratio [A-]/[HA] = {fmt(result.ratio)}. Required: "
        f"{fmt(result.acid_mass_g)} g Acid, {fmt(result.salt_mass_g)} g Salt for "
        f"{inputs.get('total_volume', '')} mL of {inputs.get('total_conc', '')} M solution."
    )


def _conversion_sentence(inputs: Mapping[str, Any], result: ConversionResult) -> str:
    label = default_registry().family(result.family).label
    return (
        f"Converted {inputs.get('value', '')} {result.from_unit} to "
        f"{fmt(result.converted_value)} {result.to_unit} ({label})."
    )


_SENTENCES: Dict[str, Callable[[Mapping[str, Any], Any], str]] = {
    "dose": _dose_sentence,
    "solution": _solution_sentence,
    "serial_dilution": _dilution_sentence,
    "buffer": _buffer_sentence,
    "unit_conversion": _conversion_sentence,
}


def summarize(formula: str, inputs: Mapping[str, Any], result: CalculationResult) -> str:
    try:
        builder = _SENTENCES[formula]
    except KeyError:
        raise UnknownFormulaError(formula) from None
    return builder(inputs, result)


def build_record(
    formula: str,
    inputs: Mapping[str, Any],
    result: CalculationResult,
    now: Optional[datetime] = None,
) -> CalculationRecord:
    return CalculationRecord(
        formula=formula,
        timestamp=now or _utcnow(),
        inputs=dict(inputs),
        result=result,
        sentence=summarize(formula, inputs, result),
    )


# ------------------------------------------------------------
# History search & suggestions
# ------------------------------------------------------------

def search_records(records: Iterable[CalculationRecord], text: Optional[str]) -> List[CalculationRecord]:
    records = list(records)
    if not text:
        return records
    needle = text.lower()
    return [
        r for r in records
        if needle in r.type.lower()
        or needle in (r.sentence or "").lower()
        or needle in to_json(r.inputs).lower()
    ]


@dataclass(frozen=True)
class Suggestion:
    title: str
    description: str
    target: str


_SUGGESTIONS: Dict[str, Suggestion] = {
    "dose": Suggestion(
        "Smart Suggestion: Serial Dilution",
        "You calculated a dose. Need to prepare the solution from a higher concentration stock?",
        "serial_dilution",
    ),
    "solution": Suggestion(
        "Smart Suggestion: Unit Conversion",
        "You prepared a solution. Do you need to convert the final concentration to a different unit (e.g., M to mM)?",
        "unit_conversion",
    ),
    "buffer": Suggestion(
        "Smart Suggestion: Animal Profile",
        "Buffer calculation is complete. Time to check patient vitals or add a new animal profile?",
        "animals",
    ),
}

_DEFAULT_SUGGESTION = Suggestion(
    "Suggestion: Dose Calculation",
    "Dose calculation is the most common task. Let's calculate a required drug amount.",
    "dose",
)

_FIRST_SUGGESTION = Suggestion(
    "Start Calculating!",
    "Perform your first calculation to get smart suggestions.",
    "dose",
)


def suggest_next(records: Iterable[CalculationRecord]) -> Suggestion:
    """Suggest a follow-up from the newest record (records are newest first)."""
    latest = next(iter(records), None)
    if latest is None:
        return _FIRST_SUGGESTION
    return _SUGGESTIONS.get(latest.formula, _DEFAULT_SUGGESTION)


# ------------------------------------------------------------
# Export
# ------------------------------------------------------------

def export_row(record: CalculationRecord) -> Dict[str, str]:
    return {
        "Type": record.type,
        "Time": record.time,
        "Input Values": to_json(record.inputs).replace('"', "'"),
        "Result Values": to_json(record.result.to_dict()).replace('"', "'"),
        "Summary": record.sentence or "N/A",
    }


def export_rows(records: Iterable[CalculationRecord]) -> pd.DataFrame:
    return pd.DataFrame([export_row(r) for r in records], columns=EXPORT_COLUMNS)


def to_csv(records: Iterable[CalculationRecord]) -> str:
    """History as CSV text. Raises EmptyHistoryError when there is nothing to export."""
    df = export_rows(records)
    if df.empty:
        raise EmptyHistoryError("No history items to export.")
    return df.to_csv(index=False, lineterminator="\n")
