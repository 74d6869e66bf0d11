"""
Tests for the engine tracer.

Verifies:
- FLEET_ENGINE_TRACE is emitted once per decorated call
- Fingerprints are stable for equal inputs and differ for different inputs
- Only keyword arguments are fingerprinted
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fleet_engines.tracer import _canonicalize, compute_input_fingerprint, traced_engine
from fleet_kernel.domain.dtos import ShiftType
from fleet_kernel.domain.values import DateWindow


def _traces(captured_logs, engine_name=None):
    return [
        r for r in captured_logs()
        if r.get("trace_type") == "FLEET_ENGINE_TRACE"
        and (engine_name is None or r["engine_name"] == engine_name)
    ]


class TestFingerprint:

    def test_stable_for_equal_inputs(self):
        fields = ("amount", "on_date")
        a = compute_input_fingerprint(fields, {"amount": Decimal("1.50"), "on_date": date(2024, 6, 1)})
        b = compute_input_fingerprint(fields, {"amount": Decimal("1.5"), "on_date": date(2024, 6, 1)})
        assert a == b
        assert len(a) == 16

    def test_differs_for_different_inputs(self):
        fields = ("on_date",)
        assert compute_input_fingerprint(fields, {"on_date": date(2024, 6, 1)}) != (
            compute_input_fingerprint(fields, {"on_date": date(2024, 6, 2)})
        )

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

    def test_canonical_forms(self):
        assert _canonicalize(ShiftType.NIGHT) == "night"
        assert _canonicalize(True) == "true"
        assert _canonicalize({"b": 1, "a": 2}) == "{a:2,b:1}"
        assert _canonicalize(frozenset({"y", "x"})) == "{x,y}"
        assert _canonicalize(UUID(int=1)) == "00000000-0000-0000-0000-000000000001"
        assert _canonicalize(DateWindow(date(2024, 1, 1), None)).startswith("DateWindow{")


class TestTracedEngine:

    def test_emits_one_trace_per_call(self, captured_logs):
        @traced_engine("unit_test_engine", "9.9", fingerprint_fields=("x",))
        def double(x):
            return x * 2

        assert double(x=21) == 42

        traces = _traces(captured_logs, "unit_test_engine")
        assert len(traces) == 1
        assert traces[0]["engine_version"] == "9.9"
        assert traces[0]["input_fingerprint"] == compute_input_fingerprint(("x",), {"x": 21})
        assert traces[0]["duration_ms"] >= 0

    def test_positional_arguments_not_fingerprinted(self, captured_logs):
        @traced_engine("positional_engine", "1.0", fingerprint_fields=("x",))
        def identity(x):
            return x

        identity(1)
        identity(2)

        fps = {t["input_fingerprint"] for t in _traces(captured_logs, "positional_engine")}
        assert len(fps) == 1

    def test_real_engine_traced(self, calculator, captured_logs):
        calculator.compute_lease_charge(
            owner_id="own-1", cab_id="cab-1", shift_type=ShiftType.DAY,
            day_of_week=None, on_date=date(2024, 6, 3), units_driven=Decimal("10"),
        )
        names = {t["engine_name"] for t in _traces(captured_logs)}
        assert {"charge_calculator.lease", "override_resolver"} <= names
