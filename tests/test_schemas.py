"""Tests for request body coercion."""

from __future__ import annotations

from datetime import datetime

import pytest

from tms_api.schemas import LoadIn, LocationIn, coerce_money


class TestCoerceMoney:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, None),
            ("", None),
            (".", None),
            ("-", None),
            ("call me", None),
            (True, None),
            ("$1,900", 1900.0),
            ("1,900.50", 1900.5),
            (" 1900 ", 1900.0),
            (1900, 1900.0),
            (1900.25, 1900.25),
            ("-12.5", -12.5),
        ],
    )
    def test_values(self, raw, expected) -> None:
        assert coerce_money(raw) == expected

    def test_garbled_number(self) -> None:
        assert coerce_money("1.2.3") is None


class TestPayloads:
    def test_money_fields_are_coerced(self) -> None:
        load = LoadIn(order_id=1, carrier_rate="$2,150.75", fuel_advance="")
        assert load.carrier_rate == 2150.75
        assert load.fuel_advance is None

    def test_timestamps_become_naive_utc(self) -> None:
        loc = LocationIn(latitude=1, longitude=2, eta="2030-01-01T10:00:00-05:00")
        assert loc.eta == datetime(2030, 1, 1, 15, 0)
        assert loc.eta.tzinfo is None
