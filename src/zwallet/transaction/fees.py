"""ZIP-317 fee estimation.

fee = 5000 zatoshis × max(2, logical_actions)

The estimate counts one baseline input, one extra spend when funds come from
a shielded pool, and one output per payment regardless of pool. Change
outputs and exact proof-level actions are not modelled: the node building
the transaction computes and enforces the real fee, so this figure is
advisory only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zwallet.zcash.amounts import zatoshis_to_zec, zec_to_zatoshis

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from zwallet.transaction.payment import Payment

BASE_FEE_PER_ACTION = 5000
MIN_ACTIONS = 2


def zip317_fee(logical_actions: int) -> int:
    """Conventional fee in zatoshis for *logical_actions* actions."""
    return BASE_FEE_PER_ACTION * max(MIN_ACTIONS, logical_actions)


def estimate_logical_actions(payments: Sequence[Payment], has_shielded_input: bool) -> int:
    return 1 + (1 if has_shielded_input else 0) + len(payments)


def estimate_fee(payments: Sequence[Payment], has_shielded_input: bool) -> int:
    """Estimated fee in zatoshis for sending *payments*."""
    return zip317_fee(estimate_logical_actions(payments, has_shielded_input))


def fee_zatoshis_to_zec(fee: int) -> Decimal:
    return zatoshis_to_zec(fee)


def fee_zec_to_zatoshis(fee: Decimal | float | str) -> int:
    """Convert a user-supplied ZEC fee; raises ValueError if negative."""
    return zec_to_zatoshis(fee)
