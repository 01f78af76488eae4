"""Tests for ZIP-321 payment request parsing."""

from __future__ import annotations

import base64

import pytest
from conftest import T_ADDR, TESTNET_Z_ADDR, U_ADDR, Z_ADDR

from zwallet.errors import (
    InvalidAddress,
    InvalidAmount,
    InvalidPaymentRequest,
    MemoOnTransparentAddress,
    MemoTooLarge,
)
from zwallet.transaction.payment_request import PaymentRequest
from zwallet.zcash.network import Network

_NET = Network.MAINNET


def _memo(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


class TestParse:
    def test_single_payment(self) -> None:
        uri = f"zcash:{Z_ADDR}?amount=1.5&memo={_memo(b'hi')}&message=Thanks%20a%20lot"
        request = PaymentRequest.from_uri(uri, _NET)
        (entry,) = request.entries
        assert entry.index == 0
        assert entry.payment.address == Z_ADDR
        assert str(entry.payment.amount) == "1.5"
        assert entry.payment.memo == b"hi"
        assert entry.message == "Thanks a lot"

    def test_multiple_payments(self) -> None:
        uri = f"zcash:?address={T_ADDR}&amount=1&address.1={U_ADDR}&amount.1=0.25&label.1=Shop"
        request = PaymentRequest.from_uri(uri, _NET)
        assert [p.address for p in request.payments] == [T_ADDR, U_ADDR]
        assert request.entries[1].label == "Shop"

    def test_scheme_case_insensitive(self) -> None:
        assert PaymentRequest.from_uri(f"ZCASH:{T_ADDR}?amount=1", _NET).payments

    def test_unknown_optional_param_ignored(self) -> None:
        request = PaymentRequest.from_uri(f"zcash:{T_ADDR}?amount=1&foo=bar", _NET)
        assert len(request.payments) == 1


class TestMalformed:
    @pytest.mark.parametrize(
        "uri",
        [
            f"bitcoin:{T_ADDR}?amount=1",
            "zcash:",
            f"zcash:{T_ADDR}?amount",
            f"zcash:{T_ADDR}?amount=1&amount=2",
            f"zcash:{T_ADDR}?amount=1&req-future=1",
            f"zcash:{T_ADDR}?amount=1&1bad=2",
            f"zcash:{T_ADDR}?amount=1&address.0={T_ADDR}",
        ],
    )
    def test_structural(self, uri: str) -> None:
        with pytest.raises(InvalidPaymentRequest):
            PaymentRequest.from_uri(uri, _NET)

    def test_missing_amount(self) -> None:
        with pytest.raises(InvalidPaymentRequest, match="no amount") as exc_info:
            PaymentRequest.from_uri(f"zcash:?address={T_ADDR}&amount=1&address.2={Z_ADDR}", _NET)
        assert exc_info.value.index == 2

    def test_missing_address(self) -> None:
        with pytest.raises(InvalidPaymentRequest, match="no address"):
            PaymentRequest.from_uri("zcash:?amount=1", _NET)

    def test_too_many_decimals(self) -> None:
        with pytest.raises(InvalidAmount):
            PaymentRequest.from_uri(f"zcash:{T_ADDR}?amount=1.123456789", _NET)

    def test_zero_amount(self) -> None:
        with pytest.raises(InvalidAmount, match="positive"):
            PaymentRequest.from_uri(f"zcash:{T_ADDR}?amount=0", _NET)

    def test_bad_memo_encoding(self) -> None:
        with pytest.raises(InvalidPaymentRequest, match="base64url"):
            PaymentRequest.from_uri(f"zcash:{Z_ADDR}?amount=1&memo=a", _NET)

    def test_memo_too_large(self) -> None:
        uri = f"zcash:{Z_ADDR}?amount=1&memo={_memo(bytes(513))}"
        with pytest.raises(MemoTooLarge):
            PaymentRequest.from_uri(uri, _NET)

    def test_memo_on_transparent_tagged_with_index(self) -> None:
        uri = f"zcash:?address={Z_ADDR}&amount=1&address.1={T_ADDR}&amount.1=1&memo.1={_memo(b'x')}"
        with pytest.raises(MemoOnTransparentAddress) as exc_info:
            PaymentRequest.from_uri(uri, _NET)
        assert exc_info.value.index == 1
        assert str(exc_info.value).startswith("Payment 1: ")

    def test_wrong_network_address(self) -> None:
        with pytest.raises(InvalidAddress, match="belongs to testnet"):
            PaymentRequest.from_uri(f"zcash:{TESTNET_Z_ADDR}?amount=1", _NET)
