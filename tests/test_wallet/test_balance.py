"""Tests for Balance and checked u64 arithmetic."""

from __future__ import annotations

import pytest

from zwallet.errors import BalanceOverflow
from zwallet.wallet.balance import Balance, checked_sum
from zwallet.zcash.amounts import U64_MAX


class TestCheckedSum:
    def test_sum(self) -> None:
        assert checked_sum("sapling", 1, 2, 3) == 6
        assert checked_sum("sapling") == 0

    def test_at_limit(self) -> None:
        assert checked_sum("orchard", U64_MAX) == U64_MAX

    def test_over_limit(self) -> None:
        with pytest.raises(BalanceOverflow) as exc_info:
            checked_sum("orchard", U64_MAX, 1)
        assert exc_info.value.pool == "orchard"

    def test_negative(self) -> None:
        with pytest.raises(BalanceOverflow):
            checked_sum("transparent", 5, -1)


class TestBalance:
    def test_defaults(self) -> None:
        balance = Balance()
        assert balance.total == 0
        assert balance.shielded == 0

    def test_total_and_shielded(self) -> None:
        balance = Balance(transparent=1, sapling=20, orchard=300)
        assert balance.total == 321
        assert balance.shielded == 320

    def test_total_overflow(self) -> None:
        with pytest.raises(BalanceOverflow, match="total"):
            Balance(sapling=U64_MAX, orchard=1)

    def test_to_dict(self) -> None:
        data = Balance(sapling=150_000_000).to_dict()
        assert data["total"] == 150_000_000
        assert data["total_zec"] == "1.50000000"

    def test_describe(self) -> None:
        text = Balance(orchard=50_000_000).describe()
        assert "Orchard:     0.50000000 ZEC" in text
        assert text.endswith("Total:       0.50000000 ZEC")

    def test_empty_balance_renders_plain_decimals(self) -> None:
        balance = Balance()
        assert balance.to_dict()["total_zec"] == "0.00000000"
        assert balance.describe().startswith("Transparent: 0.00000000 ZEC")

    def test_single_zatoshi(self) -> None:
        assert Balance(transparent=1).to_dict()["total_zec"] == "0.00000001"
