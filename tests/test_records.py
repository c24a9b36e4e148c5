"""
Unit tests for record building, summary sentences, search, suggestions and export.
"""

import io
from datetime import datetime, timezone

import pandas as pd
import pytest

from conftest import FIXED_TIME
from vetlab.calculators import calc_buffer, calc_conversion, calc_dose, calc_serial_dilution, calc_solution
from vetlab.errors import EmptyHistoryError, UnknownFormulaError
from vetlab.records import (
    EXPORT_COLUMNS,
    CalculationRecord,
    build_record,
    export_rows,
    iso_timestamp,
    search_records,
    suggest_next,
    summarize,
    to_csv,
)

DOSE_INPUTS = {"weight": "10", "dose": "5", "dose_unit": "mg", "conc": "50", "conc_unit": "mg/mL", "time": "0"}
SOLUTION_INPUTS = {"mw": "58.44", "conc": "1", "conc_unit": "M", "volume": "1000", "volume_unit": "mL"}
DILUTION_INPUTS = {"start_conc": "1", "dilution_factor": "10", "steps": "3", "conc_unit": "M"}


def dose_record(**overrides):
    inputs = {**DOSE_INPUTS, **overrides}
    result = calc_dose(inputs["weight"], inputs["dose"], inputs["conc"], inputs["time"])
    return build_record("dose", inputs, result, now=FIXED_TIME)


def solution_record():
    result = calc_solution("58.44", "1", "1000")
    return build_record("solution", SOLUTION_INPUTS, result, now=FIXED_TIME)


# ─── Sentences ────────────────────────────────────────────────────────────────

class TestSummaries:

    def test_dose(self):
        assert dose_record().sentence == (
            "Dose for Unknown Animal (10kg): 50 mg required, volume 1 mL from 50 mg/mL stock. "
            "Infusion rate: 0 mL/hr."
        )

    def test_dose_with_animal_and_rate(self):
        record = dose_record(time="30", animal_name="Rex")
        assert record.sentence.startswith("Dose for Rex (10kg)")
        assert record.sentence.endswith("Infusion rate: 2 mL/hr.")

    def test_uses_raw_input_strings(self):
        """The sentence echoes what was typed, not the parsed number."""
        inputs = {**DOSE_INPUTS, "weight": "10.50"}
        result = calc_dose("10.50", "5", "50")
        assert "(10.50kg)" in summarize("dose", inputs, result)

    def test_solution(self):
        assert solution_record().sentence == (
            "To make a solution of 1 M in 1000 mL (MW: 58.44), 58.44 grams are needed."
        )

    def test_dilution(self):
        result = calc_serial_dilution("1", "10", "3")
        assert summarize("serial_dilution", DILUTION_INPUTS, result) == (
            "Serial dilution of 1 M with factor 10 for 3 steps. Final concentration: 0.001 M."
        )

    def test_buffer(self):
        inputs = {"ph": "7", "pka": "7", "mw_acid": "100", "mw_salt": "200",
                  "total_volume": "1000", "total_conc": "0.1"}
        result = calc_buffer("7", "7", "100", "200", "1000", "0.1")
        assert summarize("buffer", inputs, result) == (
            "Buffer calculated: Ratio [A-]/[HA] = 1. Required: 5 g Acid, 10 g Salt "
            "for 1000 mL of 0.1 M solution."
        )

    def test_conversion(self):
        result = calc_conversion("1", "kg", "g", "MASS")
        inputs = {"value": "1", "from_unit": "kg", "to_unit": "g", "family": "MASS"}
        assert summarize("unit_conversion", inputs, result) == "Converted 1 kg to 1000 g (Mass (kg, g, mg, µg))."

    def test_unknown_formula(self):
        with pytest.raises(UnknownFormulaError):
            summarize("titration", {}, None)


# ─── Record shape ─────────────────────────────────────────────────────────────

class TestCalculationRecord:

    def test_type_and_time(self):
        record = dose_record()
        assert record.type == "Dose Calculation"
        assert record.time == "2026-01-02T03:04:05.000Z"

    def test_naive_timestamp_is_utc(self):
        assert iso_timestamp(datetime(2026, 5, 1, 12, 0)) == "2026-05-01T12:00:00.000Z"

    def test_dict_round_trip_dose(self):
        record = dose_record(time="30")
        restored = CalculationRecord.from_dict(record.to_dict())
        assert restored == record

    def test_dict_round_trip_dilution(self):
        result = calc_serial_dilution("1", "10", "3")
        record = build_record("serial_dilution", DILUTION_INPUTS, result, now=FIXED_TIME)
        restored = CalculationRecord.from_dict(record.to_dict())
        assert restored.result == result
        assert restored.timestamp == FIXED_TIME


# ─── Search & suggestions ─────────────────────────────────────────────────────

class TestSearchAndSuggest:

    def test_search(self):
        records = [dose_record(animal_name="Rex"), solution_record()]
        assert search_records(records, "") == records
        assert search_records(records, None) == records
        assert search_records(records, "SOLUTION") == [records[1]]
        assert search_records(records, "grams") == [records[1]]
        assert search_records(records, "rex") == [records[0]]
        assert search_records(records, "58.44") == [records[1]]
        assert search_records(records, "titration") == []

    def test_suggestions(self):
        assert suggest_next([]).title == "Start Calculating!"
        assert suggest_next([dose_record()]).target == "serial_dilution"
        assert suggest_next([solution_record(), dose_record()]).target == "unit_conversion"

    def test_default_suggestion(self):
        result = calc_conversion("1", "kg", "g", "MASS")
        record = build_record("unit_conversion", {"value": "1"}, result, now=FIXED_TIME)
        assert suggest_next([record]).target == "dose"


# ─── Export ───────────────────────────────────────────────────────────────────

class TestExport:

    def test_rows(self):
        df = export_rows([dose_record(), solution_record()])
        assert list(df.columns) == EXPORT_COLUMNS
        row = df.iloc[1]
        assert row["Type"] == "Solution Calculation"
        assert row["Time"] == "2026-01-02T03:04:05.000Z"
        assert '"' not in row["Input Values"]
        assert "'mw':'58.44'" in row["Input Values"]
        assert "'grams_needed':" in row["Result Values"]

    def test_csv(self):
        text = to_csv([dose_record(), solution_record()])
        assert text.splitlines()[0] == "Type,Time,Input Values,Result Values,Summary"
        back = pd.read_csv(io.StringIO(text))
        assert len(back) == 2
        assert back["Summary"][1] == solution_record().sentence

    def test_missing_sentence(self):
        record = dose_record()
        blank = CalculationRecord(record.formula, record.timestamp, record.inputs, record.result, "")
        assert export_rows([blank]).iloc[0]["Summary"] == "N/A"

    def test_empty_history(self):
        with pytest.raises(EmptyHistoryError):
            to_csv([])

    def test_infinite_values_export_as_null(self):
        result = calc_buffer("400", "1", "100", "100", "100", "1")
        record = build_record("buffer", {"ph": "400"}, result, now=datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert "'ratio':null" in export_rows([record]).iloc[0]["Result Values"]
