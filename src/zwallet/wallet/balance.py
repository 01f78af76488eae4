"""Balance aggregates with checked 64-bit arithmetic."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from zwallet.errors.storage_errors import BalanceOverflow
from zwallet.zcash.amounts import U64_MAX, format_zec, zatoshis_to_zec


def checked_sum(pool: str, *values: int) -> int:
    """Sum non-negative zatoshi values, failing if the result leaves the u64 range.

    Raises:
        BalanceOverflow: If any value is negative or the sum exceeds ``2**64 - 1``.
    """
    total = 0
    for value in values:
        if value < 0:
            raise BalanceOverflow(pool)
        total += value
        if total > U64_MAX:
            raise BalanceOverflow(pool)
    return total


@dataclass(frozen=True)
class Balance:
    """Per-pool balance in zatoshis; ``total`` is derived and checked."""

    transparent: int = 0
    sapling: int = 0
    orchard: int = 0
    total: int = field(init=False)

    def __post_init__(self) -> None:
        checked_sum("transparent", self.transparent)
        checked_sum("sapling", self.sapling)
        checked_sum("orchard", self.orchard)
        object.__setattr__(
            self, "total", checked_sum("total", self.transparent, self.sapling, self.orchard)
        )

    @property
    def shielded(self) -> int:
        return checked_sum("shielded", self.sapling, self.orchard)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with both zatoshi and ZEC figures."""
        return {
            "transparent": self.transparent,
            "sapling": self.sapling,
            "orchard": self.orchard,
            "total": self.total,
            "total_zec": format(zatoshis_to_zec(self.total), "f"),
        }

    def describe(self) -> str:
        lines = [
            f"Transparent: {format_zec(zatoshis_to_zec(self.transparent))}",
            f"Sapling:     {format_zec(zatoshis_to_zec(self.sapling))}",
            f"Orchard:     {format_zec(zatoshis_to_zec(self.orchard))}",
            f"Total:       {format_zec(zatoshis_to_zec(self.total))}",
        ]
        return "\n".join(lines)
