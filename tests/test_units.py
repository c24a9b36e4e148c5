"""
Unit tests for the unit conversion registry.
"""

import math

import pytest

from vetlab.errors import UnitNotFoundError, UnknownFamilyError
from vetlab.units import (
    CONC_DOSE,
    MASS,
    MOLARITY,
    TEMP,
    VOLUME,
    ConversionStatus,
    Quantity,
    UnitFamily,
    UnitRegistry,
    convert,
    default_registry,
)


class TestLinearFamilies:

    def test_mass(self, registry):
        assert registry.convert(1, "kg", "g", MASS) == 1000.0
        assert registry.convert(500, "mg", "g", MASS) == pytest.approx(0.5)
        assert registry.convert(2, "g", "ug", MASS) == pytest.approx(2e6)

    def test_volume(self, registry):
        assert registry.convert(250, "mL", "L", VOLUME) == pytest.approx(0.25)
        assert registry.convert(1, "mL", "uL", VOLUME) == pytest.approx(1000)

    def test_molarity(self, registry):
        assert registry.convert(150, "mM", "M", MOLARITY) == pytest.approx(0.15)

    def test_percent_wv_is_ten_mg_per_ml(self, registry):
        assert registry.convert(1, "% w/v", "mg/mL", CONC_DOSE) == 10.0
        assert registry.convert(0.9, "% w/v", "g/L", CONC_DOSE) == pytest.approx(9.0)

    def test_every_linear_family_has_a_base_unit(self, registry):
        for name in registry.families():
            fam = registry.family(name)
            if fam.linear:
                assert fam.factors[fam.base_unit] == 1

    def test_units_in_declared_order(self, registry):
        assert registry.units(VOLUME) == ["L", "mL", "uL"]
        assert registry.units(TEMP) == ["C", "F", "K"]


class TestTemperature:

    def test_known_points(self, registry):
        assert registry.convert(100, "C", "F", TEMP) == pytest.approx(212)
        assert registry.convert(32, "F", "C", TEMP) == pytest.approx(0)
        assert registry.convert(0, "C", "K", TEMP) == pytest.approx(273.15)
        assert registry.convert(300, "K", "F", TEMP) == pytest.approx(80.33)

    @pytest.mark.parametrize("celsius", [-40.0, 0.0, 36.6, 38.5, 100.0, 1e6])
    def test_round_trip(self, registry, celsius):
        f = registry.convert(celsius, "C", "F", TEMP)
        assert registry.convert(f, "F", "C", TEMP) == pytest.approx(celsius, abs=1e-9)

    def test_unknown_unit_reads_as_celsius(self, registry):
        conv = registry.lookup(10, "X", "C", TEMP)
        assert conv.value == 10
        assert conv.status is ConversionStatus.UNKNOWN_UNIT
        assert conv.missing_unit == "X"


class TestIdentityAndMisses:

    def test_identity_for_every_unit(self, registry):
        for name in registry.families():
            for unit in registry.units(name):
                assert registry.convert(0.1, unit, unit, name) == 0.1

    def test_unknown_family_returns_value(self, registry):
        conv = registry.lookup(5, "a", "b", "DISTANCE")
        assert conv.value == 5
        assert conv.status is ConversionStatus.UNKNOWN_FAMILY

    def test_unknown_unit_is_nan(self, registry):
        conv = registry.lookup(1, "lb", "g", MASS)
        assert math.isnan(conv.value)
        assert not conv.ok
        assert conv.missing_unit == "lb"
        assert math.isnan(registry.convert(1, "g", "lb", MASS))

    def test_strict_raises(self, registry):
        with pytest.raises(UnitNotFoundError):
            registry.convert_strict(1, "lb", "g", MASS)
        with pytest.raises(UnknownFamilyError):
            registry.convert_strict(1, "a", "b", "DISTANCE")
        assert registry.convert_strict(1, "kg", "g", MASS) == 1000.0

    def test_family_lookup_raises(self, registry):
        with pytest.raises(UnknownFamilyError):
            registry.family("DISTANCE")


class TestConstruction:

    def test_base_unit_needs_factor_one(self):
        with pytest.raises(ValueError):
            UnitFamily(name="BAD", label="bad", base_unit="g", factors={"g": 2.0})

    def test_duplicate_family(self):
        fam = UnitFamily(name="X", label="x", base_unit="a", factors={"a": 1.0})
        with pytest.raises(ValueError):
            UnitRegistry([fam, fam])

    def test_default_registry_is_shared(self):
        assert default_registry() is default_registry()
        assert convert(1, "kg", "g", MASS) == 1000.0


class TestQuantity:

    def test_to(self, registry):
        q = registry.quantity(1.5, "kg", MASS)
        assert q.to("g").value == pytest.approx(1500)
        assert q.to("g").unit == "g"
        assert q.to("kg") is q

    def test_rejects_foreign_unit(self, registry):
        with pytest.raises(UnitNotFoundError):
            Quantity(1, "mL", registry.family(MASS))
        with pytest.raises(UnitNotFoundError):
            registry.quantity(1, "kg", MASS).to("mL")
