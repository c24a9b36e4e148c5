"""
Calculation engine: the entry point the UI and batch runs talk to.

- preview():            live result while a form is being filled (never records)
- submit_calculation(): compute, build the record, hand it to the history store
- run_batch():          submit every row of a CSV / DataFrame
"""

from __future__ import annotations
from datetime import datetime
from inspect import Parameter, signature
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import logging
import math
import os

import pandas as pd

from vetlab.calculators import CALC_REGISTRY, CalculationResult, is_recordable
from vetlab.errors import HistoryWriteError, UnknownFormulaError
from vetlab.records import (
    CalculationRecord,
    Suggestion,
    build_record,
    search_records,
    suggest_next,
    to_csv,
)
from vetlab.stores import AnimalStore, HistoryStore, InMemoryAnimalStore, InMemoryHistoryStore
from vetlab.units import UnitRegistry, default_registry

logger = logging.getLogger(__name__)


def _plain_number(value: float) -> str:
    # 15.0 -> "15", 15.5 -> "15.5"
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


class CalculationEngine:
    """
    Runs calculators against one unit registry and one pair of stores.

    Args:
        registry: unit registry shared by every calculator (default table if None)
        history:  history store records are appended to
        animals:  animal profiles, read for weight pre-fill on dose calculations
        clock:    returns the record timestamp (timezone-aware)
    """

    def __init__(
        self,
        registry: Optional[UnitRegistry] = None,
        history: Optional[HistoryStore] = None,
        animals: Optional[AnimalStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry or default_registry()
        self.history_store = history if history is not None else InMemoryHistoryStore()
        self.animals = animals if animals is not None else InMemoryAnimalStore()
        self._clock = clock

    # ------------------------------------------------------------
    # Calculators
    # ------------------------------------------------------------

    def _calculator(self, formula: str) -> Callable[..., Optional[CalculationResult]]:
        try:
            return CALC_REGISTRY[formula]
        except KeyError:
            raise UnknownFormulaError(formula) from None

    def _prepare_inputs(self, formula: str, raw_inputs: Mapping[str, Any]) -> Dict[str, Any]:
        """Echoed input map: raw values, profile pre-fill, default unit choices."""
        inputs = dict(raw_inputs)

        if formula == "dose" and inputs.get("animal_id"):
            profile = self.animals.get(inputs["animal_id"])
            if profile is not None:
                inputs["weight"] = _plain_number(profile.weight)
                inputs.setdefault("animal_name", profile.name)

        for name, param in signature(self._calculator(formula)).parameters.items():
            if name not in inputs and isinstance(param.default, str):
                inputs[name] = param.default
        return inputs

    def _run(self, formula: str, inputs: Mapping[str, Any]) -> Optional[CalculationResult]:
        fn = self._calculator(formula)
        kwargs: Dict[str, Any] = {}
        for name, param in signature(fn).parameters.items():
            if name == "registry":
                continue
            if name in inputs:
                kwargs[name] = inputs[name]
            elif param.default is Parameter.empty:
                kwargs[name] = None
        return fn(registry=self.registry, **kwargs)

    def preview(self, formula: str, raw_inputs: Mapping[str, Any]) -> Optional[CalculationResult]:
        """Result for the current form state, or None while it is incomplete."""
        return self._run(formula, self._prepare_inputs(formula, raw_inputs))

    def submit_calculation(self, formula: str, raw_inputs: Mapping[str, Any]) -> Optional[CalculationRecord]:
        """
        Compute and record a calculation.

        Returns None (and records nothing) when the inputs are incomplete or
        the result is not recordable (identity conversion). Raises
        HistoryWriteError if the store fails; the built record is on the
        exception.
        """
        inputs = self._prepare_inputs(formula, raw_inputs)
        result = self._run(formula, inputs)
        if not is_recordable(result):
            logger.debug("%s: incomplete input, nothing recorded", formula)
            return None

        now = self._clock() if self._clock else None
        record = build_record(formula, inputs, result, now=now)
        try:
            self.history_store.append(record)
        except HistoryWriteError as e:
            if e.record is None:
                e.record = record
            raise
        except Exception as e:
            logger.warning("Failed to save %s: %s", record.type, e)
            raise HistoryWriteError(f"Failed to save history: {e}", record=record) from e

        logger.info("Saved %s", record.type)
        return record

    def convert(self, value: float, from_unit: str, to_unit: str, family: str) -> float:
        return self.registry.convert(value, from_unit, to_unit, family)

    # ------------------------------------------------------------
    # History
    # ------------------------------------------------------------

    def history(self, query: Optional[str] = None) -> List[CalculationRecord]:
        return search_records(self.history_store.list(), query)

    def suggest(self) -> Suggestion:
        return suggest_next(self.history_store.list())

    def export_csv(self, records: Optional[List[CalculationRecord]] = None) -> str:
        return to_csv(self.history_store.list() if records is None else records)

    # ------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------

    def run_batch(self, data: Union[pd.DataFrame, str, os.PathLike]) -> pd.DataFrame:
        """
        Submit every row of a batch table.

        Each row needs a `mode` column naming the formula (dose, solution,
        serial_dilution, buffer, unit_conversion); other columns are raw inputs.
        Output rows echo the input plus `status` and the flattened result, or
        an `error` column.
        """
        if isinstance(data, pd.DataFrame):
            df_in = data
        else:
            df_in = pd.read_csv(data, dtype=str, keep_default_na=False)
        if "mode" not in df_in.columns:
            raise ValueError("Batch table must have a 'mode' column.")

        out_rows = []
        for _, row in df_in.iterrows():
            row_in = row.to_dict()
            raw = {k: v for k, v in row_in.items() if k != "mode" and not _is_blank(v)}
            try:
                record = self.submit_calculation(str(row_in["mode"]).strip(), raw)
            except UnknownFormulaError as e:
                out = {"status": "error", "error": str(e)}
            except HistoryWriteError as e:
                out = {"status": "unsaved", "error": str(e), **_flatten(e.record.result.to_dict())}
            else:
                if record is None:
                    out = {"status": "incomplete"}
                else:
                    out = {"status": "saved", **_flatten(record.result.to_dict()), "sentence": record.sentence}
            out_rows.append({**row_in, **out})

        logger.info("Batch: %d rows processed", len(out_rows))
        return pd.DataFrame(out_rows)


def _flatten(result: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in result.items() if not isinstance(v, (list, dict))}
