"""Tests for ZIP-317 fee estimation."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import T_ADDR, Z_ADDR

from zwallet.transaction.fees import (
    estimate_fee,
    estimate_logical_actions,
    fee_zatoshis_to_zec,
    fee_zec_to_zatoshis,
    zip317_fee,
)
from zwallet.transaction.payment import Payment


def _payments(n: int) -> list[Payment]:
    return [Payment.create(Z_ADDR if i % 2 else T_ADDR, 1) for i in range(n)]


class TestZip317:
    def test_minimum_two_actions(self) -> None:
        assert zip317_fee(0) == 10_000
        assert zip317_fee(1) == 10_000
        assert zip317_fee(2) == 10_000

    def test_linear_above_minimum(self) -> None:
        assert zip317_fee(7) == 35_000


class TestEstimate:
    def test_empty_batch(self) -> None:
        assert estimate_fee([], has_shielded_input=False) == 10_000

    def test_three_payments_shielded_input(self) -> None:
        assert estimate_logical_actions(_payments(3), True) == 5
        assert estimate_fee(_payments(3), has_shielded_input=True) == 25_000

    def test_transparent_input(self) -> None:
        assert estimate_fee(_payments(3), has_shielded_input=False) == 20_000

    def test_monotone_in_payment_count(self) -> None:
        fees = [estimate_fee(_payments(n), has_shielded_input=True) for n in range(10)]
        assert fees == sorted(fees)


class TestConversion:
    def test_to_zec(self) -> None:
        assert fee_zatoshis_to_zec(10_000) == Decimal("0.00010000")

    def test_from_zec(self) -> None:
        assert fee_zec_to_zatoshis("0.0001") == 10_000
        assert fee_zec_to_zatoshis(0.00015) == 15_000

    def test_negative(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            fee_zec_to_zatoshis("-0.0001")
