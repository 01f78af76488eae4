"""Integration test — payment submission and compact-block sync end to end.

The real RPC and lightwalletd clients talk to in-process fakes of zcashd and
the lightwalletd gateway through httpx mock transports; storage is in-memory
SQLite.

Flow:
  1. Submit a two-payment batch through the pipeline
  2. Poll the operation until zcashd reports the txid
  3. Sync a seed wallet from its birthday to the chain tip
  4. Resume the sync after the tip moves
"""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from conftest import MNEMONIC, T_ADDR, U_ADDR, Z_ADDR

from zwallet.chain.lightwalletd.client import LightwalletdClient
from zwallet.chain.lightwalletd.models import display_hash
from zwallet.chain.rpc.client import ZcashRPCClient
from zwallet.errors import MemoOnTransparentAddress, OperationFailed
from zwallet.metrics.collector import WalletMetrics
from zwallet.sync.cursor import ChainState
from zwallet.sync.engine import SyncEngine
from zwallet.transaction.payment import Payment
from zwallet.transaction.poller import OperationPoller
from zwallet.transaction.submission import SubmissionPipeline
from zwallet.wallet.keystore import SeedKeystore
from zwallet.zcash.network import Network

if TYPE_CHECKING:
    from zwallet.wallet.store import WalletStore

_TXID = "ab" * 32


# ---------------------------------------------------------------------------
# In-process fakes
# ---------------------------------------------------------------------------


class FakeZcashd:
    """Answers the JSON-RPC calls the pipeline and poller make."""

    def __init__(self, *, pending_polls: int = 1, failure: str | None = None) -> None:
        self.pending_polls = pending_polls
        self.failure = failure
        self.sent: list[list[Any]] = []
        self.polls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        if method == "z_sendmany":
            self.sent.append(params)
            result: Any = "opid-e2e"
        elif method == "z_getoperationstatus":
            self.polls += 1
            result = [self._status(params[0][0])]
        else:
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -32601, "message": "Method not found"}},
            )
        return httpx.Response(200, json={"result": result, "error": None, "id": body["id"]})

    def _status(self, operation_id: str) -> dict[str, Any]:
        if self.polls <= self.pending_polls:
            return {"id": operation_id, "status": "executing"}
        if self.failure is not None:
            return {"id": operation_id, "status": "failed", "error": {"code": -6, "message": self.failure}}
        return {"id": operation_id, "status": "success", "result": {"txid": _TXID}}


def _raw_hash(height: int) -> bytes:
    return height.to_bytes(8, "little") * 4


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode()


class FakeLightwalletd:
    """Serves a linear chain of compact blocks up to ``tip``."""

    def __init__(self, tip: int, *, reorged: int | None = None) -> None:
        self.tip = tip
        self.reorged = reorged
        self.ranges: list[tuple[int, int]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if method == "GetLatestBlock":
            return httpx.Response(200, json={"height": str(self.tip), "hash": _b64(_raw_hash(self.tip))})
        if method == "GetBlockRange":
            body = json.loads(request.content)
            start, end = int(body["start"]["height"]), int(body["end"]["height"])
            self.ranges.append((start, end))
            lines = [
                json.dumps({"result": self._block(height)})
                for height in range(start, min(end, self.tip) + 1)
            ]
            return httpx.Response(200, content="\n".join(lines).encode())
        return httpx.Response(404, json={"code": 12, "message": f"unknown method {method}"})

    def _block(self, height: int) -> dict[str, Any]:
        parent = b"\xee" * 32 if height == self.reorged else _raw_hash(height - 1)
        return {
            "height": str(height),
            "hash": _b64(_raw_hash(height)),
            "prevHash": _b64(parent),
            "time": 1_700_000_000 + height,
        }


@pytest.fixture
def keystore() -> SeedKeystore:
    return SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET, birthday_height=100)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestSendFlow:
    async def test_submit_and_wait_for_txid(self) -> None:
        zcashd = FakeZcashd(pending_polls=2)
        metrics = WalletMetrics()
        transport = httpx.MockTransport(zcashd.handler)
        async with ZcashRPCClient(
            "http://127.0.0.1:8232", user="rpc", password="pw", transport=transport
        ) as rpc:
            pipeline = SubmissionPipeline(rpc, Network.MAINNET, metrics=metrics)
            operation_id = await pipeline.submit(
                Z_ADDR,
                [Payment.create(U_ADDR, "1.25", "invoice 42"), Payment.create(T_ADDR, "0.5")],
            )
            poller = OperationPoller(rpc, interval=0.0, max_wait=30.0, metrics=metrics)
            txid = await poller.wait_for_terminal(operation_id)

        assert operation_id == "opid-e2e"
        assert txid == _TXID
        assert zcashd.polls == 3
        from_address, amounts, minconf = zcashd.sent[0]
        assert from_address == Z_ADDR
        assert amounts[0] == {"address": U_ADDR, "amount": 1.25, "memo": b"invoice 42".hex()}
        assert amounts[1] == {"address": T_ADDR, "amount": 0.5}
        assert minconf == 1
        sample = metrics.registry.get_sample_value
        assert sample("zwallet_submissions_total", {"outcome": "accepted"}) == 1
        assert sample("zwallet_operation_wait_seconds_count", {"outcome": "succeeded"}) == 1

    async def test_remote_failure_reason_reaches_caller(self) -> None:
        reason = "Insufficient funds: have 0.00, need 1.75 including fee"
        zcashd = FakeZcashd(failure=reason)
        async with ZcashRPCClient(
            "http://127.0.0.1:8232", transport=httpx.MockTransport(zcashd.handler)
        ) as rpc:
            operation_id = await SubmissionPipeline(rpc, Network.MAINNET).send_to_address(
                T_ADDR, Z_ADDR, "1.75"
            )
            with pytest.raises(OperationFailed) as exc_info:
                await OperationPoller(rpc, interval=0.0).wait_for_terminal(operation_id)

        assert exc_info.value.reason == reason
        assert exc_info.value.rpc_code == -6

    async def test_invalid_batch_never_reaches_node(self) -> None:
        zcashd = FakeZcashd()
        async with ZcashRPCClient(
            "http://127.0.0.1:8232", transport=httpx.MockTransport(zcashd.handler)
        ) as rpc:
            pipeline = SubmissionPipeline(rpc, Network.MAINNET)
            with pytest.raises(MemoOnTransparentAddress, match="Payment 1: "):
                await pipeline.submit(
                    Z_ADDR, [Payment.create(Z_ADDR, 1), Payment.create(T_ADDR, 1, "memo")]
                )
        assert zcashd.sent == []


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestSyncFlow:
    async def test_sync_from_birthday_then_resume(
        self, store: WalletStore, keystore: SeedKeystore
    ) -> None:
        lightwalletd = FakeLightwalletd(tip=120)
        client = LightwalletdClient(
            "https://lwd.test:9067", transport=httpx.MockTransport(lightwalletd.handler)
        )
        async with client:
            engine = SyncEngine(client, store, keystore, batch_size=8)
            first = await engine.sync(keystore.birthday_height)

            assert first.is_complete
            assert first.final_height == 120
            assert first.blocks_processed == 21
            assert lightwalletd.ranges[0] == (100, 107)
            assert lightwalletd.ranges[-1] == (116, 120)

            account = await store.get_account_for_viewing_key(keystore.viewing_key().encoded)
            assert account is not None
            assert account.birthday_height == 100
            assert await store.latest_chain_state(account.id) == ChainState(
                120, display_hash(_raw_hash(120))
            )

            lightwalletd.tip = 130
            second = await engine.sync(121)

        assert second.is_complete
        assert second.final_height == 130
        assert second.account_id == first.account_id
        assert (await store.latest_chain_state(account.id)).height == 130

    async def test_reorged_block_is_reported(
        self, store: WalletStore, keystore: SeedKeystore
    ) -> None:
        lightwalletd = FakeLightwalletd(tip=119, reorged=108)
        async with LightwalletdClient(
            "https://lwd.test:9067", transport=httpx.MockTransport(lightwalletd.handler)
        ) as client:
            result = await SyncEngine(client, store, keystore, batch_size=8).sync(100)

        assert result.final_height == 119
        assert [(r.start, r.end) for r in result.failed_ranges] == [(108, 115)]
        assert "scan failed for 108..115" in result.describe()
