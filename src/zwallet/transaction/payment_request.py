"""ZIP-321 payment request URIs.

    zcash:<address>?amount=1.5&memo=<base64url>&message=Thanks
    zcash:?address=<a>&amount=1&address.1=<b>&amount.1=2

Parameters without a suffix belong to payment 0; ``name.N`` belongs to
payment N. Each payment is converted into a :class:`Payment` and checked with
the same rules as any other payment, failures tagged by the payment's
index in the URI.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING
from urllib.parse import unquote

from zwallet.errors.validation_errors import (
    InvalidAmount,
    InvalidPaymentRequest,
    MemoTooLarge,
)
from zwallet.transaction.payment import MAX_MEMO_BYTES, Payment
from zwallet.transaction.validator import validate_payment

if TYPE_CHECKING:
    from zwallet.zcash.network import Network

_SCHEME = "zcash:"
_PARAM_RE = re.compile(r"^([A-Za-z][A-Za-z0-9-]*)(?:\.([1-9][0-9]{0,3}))?$")
_AMOUNT_RE = re.compile(r"^[0-9]+(?:\.[0-9]{1,8})?$")
_KNOWN_PARAMS = frozenset({"address", "amount", "memo", "label", "message"})


@dataclass(frozen=True)
class RequestedPayment:
    """One payment from a request, with its URI index and display fields."""

    index: int
    payment: Payment
    label: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    """A parsed ZIP-321 request."""

    entries: tuple[RequestedPayment, ...]

    @property
    def payments(self) -> list[Payment]:
        return [entry.payment for entry in self.entries]

    @classmethod
    def from_uri(cls, uri: str, network: Network) -> PaymentRequest:
        """Parse and check a ``zcash:`` URI.

        Raises:
            InvalidPaymentRequest: If the URI is structurally malformed.
            InvalidAddress, InvalidAmount, MemoTooLarge, MemoOnTransparentAddress:
                If a payment breaks a payment rule; ``index`` is the URI index.
        """
        if not uri.lower().startswith(_SCHEME):
            raise InvalidPaymentRequest("URI must start with 'zcash:'")
        body = uri[len(_SCHEME) :]
        path, _, query = body.partition("?")

        fields: dict[int, dict[str, str]] = {}
        if path:
            fields.setdefault(0, {})["address"] = path

        for pair in filter(None, query.split("&")):
            key, sep, raw_value = pair.partition("=")
            if not sep:
                raise InvalidPaymentRequest(f"parameter {key!r} has no value")
            match = _PARAM_RE.match(key)
            if match is None:
                raise InvalidPaymentRequest(f"malformed parameter name {key!r}")
            name, suffix = match.group(1), match.group(2)
            index = int(suffix) if suffix else 0
            if name.startswith("req-"):
                raise InvalidPaymentRequest(
                    f"unsupported required parameter {name!r}", index=index
                )
            if name not in _KNOWN_PARAMS:
                continue
            params = fields.setdefault(index, {})
            if name in params:
                raise InvalidPaymentRequest(f"duplicate parameter {key!r}", index=index)
            params[name] = raw_value if name == "address" else unquote(raw_value)

        if not fields:
            raise InvalidPaymentRequest("request contains no payments")
        entries = tuple(
            _build_entry(index, fields[index], network) for index in sorted(fields)
        )
        return cls(entries=entries)


def _build_entry(index: int, params: dict[str, str], network: Network) -> RequestedPayment:
    address = params.get("address")
    if not address:
        raise InvalidPaymentRequest("payment has no address", index=index)

    raw_amount = params.get("amount")
    if raw_amount is None:
        raise InvalidPaymentRequest("payment has no amount", index=index)
    if not _AMOUNT_RE.match(raw_amount):
        raise InvalidAmount(raw_amount, "not a valid ZEC amount", index=index)

    memo = _decode_memo(params["memo"], index) if "memo" in params else None
    payment = Payment(address=address, amount=Decimal(raw_amount), memo=memo or None)
    validate_payment(payment, network, index=index)
    return RequestedPayment(
        index=index,
        payment=payment,
        label=params.get("label"),
        message=params.get("message"),
    )


def _decode_memo(value: str, index: int) -> bytes:
    """Decode an unpadded base64url memo."""
    try:
        memo = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except (binascii.Error, ValueError) as exc:
        raise InvalidPaymentRequest("memo is not valid base64url", index=index) from exc
    if len(memo) > MAX_MEMO_BYTES:
        raise MemoTooLarge(len(memo), MAX_MEMO_BYTES, index=index)
    return memo
