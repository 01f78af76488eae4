"""Tests for the zwallet command line — commands that need no remote service."""

from __future__ import annotations

import asyncio
import csv
import json
from typing import TYPE_CHECKING

import pytest
from conftest import MNEMONIC, T_ADDR, Z_ADDR

from zwallet import cli
from zwallet.config.settings import DatabaseConfig
from zwallet.datastore.client import Datastore
from zwallet.transaction.payment import Payment
from zwallet.wallet.keystore import SeedKeystore
from zwallet.wallet.models import Pool
from zwallet.wallet.reporting import AUDIT_COLUMNS
from zwallet.wallet.store import WalletStore
from zwallet.zcash.network import Network

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep config, database and wallet file inside the test's temp dir."""
    for name in ("ZWALLET_NETWORK", "ZWALLET_CONFIG_PATH", "ZWALLET_METRICS__ENABLED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ZWALLET_DB__DSN", f"sqlite+aiosqlite:///{tmp_path / 'wallet.db'}")


@pytest.fixture
def wallet_path(tmp_path: Path) -> str:
    return str(tmp_path / "wallet.json")


def _run(*argv: str) -> int:
    return cli.main(list(argv))


# ---------------------------------------------------------------------------
# wallet
# ---------------------------------------------------------------------------


class TestWalletCommands:
    def test_create(self, wallet_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("--network", "testnet", "--wallet-path", wallet_path, "wallet", "create") == 0
        out = capsys.readouterr().out
        assert "ZCASH TESTNET WALLET" in out
        assert "Seed phrase: " in out
        keystore = SeedKeystore.load(wallet_path)
        assert keystore.network is Network.TESTNET
        assert keystore.mnemonic in out

    def test_create_refuses_existing(
        self, wallet_path: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _run("--wallet-path", wallet_path, "wallet", "create")
        capsys.readouterr()
        assert _run("--wallet-path", wallet_path, "wallet", "create") == 1
        assert "Error: Wallet file already exists" in capsys.readouterr().err

    def test_restore(
        self,
        wallet_path: str,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": MNEMONIC)
        argv = ("--wallet-path", wallet_path, "wallet", "create", "--restore", "--birthday", "419200")
        assert _run(*argv) == 0
        out = capsys.readouterr().out
        assert "Seed phrase" not in out
        expected = SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET).transparent_address()
        assert f"Transparent address: {expected}" in out
        assert SeedKeystore.load(wallet_path).birthday_height == 419_200

    def test_restore_invalid_phrase(
        self,
        wallet_path: str,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": "not a seed phrase")
        assert _run("--wallet-path", wallet_path, "wallet", "create", "--restore") == 1
        assert "Invalid seed phrase" in capsys.readouterr().err

    def test_info(self, wallet_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET, birthday_height=5).save(wallet_path)
        assert _run("--wallet-path", wallet_path, "wallet", "info") == 0
        out = capsys.readouterr().out
        assert "Network:        mainnet" in out
        assert "Birthday:       5" in out

    def test_info_network_mismatch(
        self, wallet_path: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        SeedKeystore.from_mnemonic(MNEMONIC, Network.TESTNET).save(wallet_path)
        assert _run("--wallet-path", wallet_path, "wallet", "info") == 1
        assert "Wallet file is for testnet" in capsys.readouterr().err

    def test_info_missing_file(self, wallet_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("--wallet-path", wallet_path, "wallet", "info") == 1
        assert "Wallet file not found" in capsys.readouterr().err

    def test_list_empty(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("wallet", "list") == 0
        assert "No accounts imported yet" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# address / balance
# ---------------------------------------------------------------------------


class TestAddressAndBalance:
    def test_transparent_address(self, wallet_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        keystore = SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET)
        keystore.save(wallet_path)
        assert _run("--wallet-path", wallet_path, "address", "transparent", "--index", "2") == 0
        assert capsys.readouterr().out.strip() == keystore.transparent_address(2)

    def test_local_balance_before_sync(
        self, wallet_path: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET).save(wallet_path)
        assert _run("--wallet-path", wallet_path, "balance") == 0
        assert "Total:       0.00000000 ZEC" in capsys.readouterr().out

    def test_balance_with_viewing_key(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("balance", "--viewing-key", "uview1example") == 0
        assert "Orchard:" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# send (local checks only)
# ---------------------------------------------------------------------------


class TestSend:
    def test_missing_recipient(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("send", T_ADDR) == 1
        assert "send needs <to> <amount> or --uri" in capsys.readouterr().err

    def test_bad_fee(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("send", T_ADDR, Z_ADDR, "1", "--fee", "lots") == 1
        assert "invalid fee" in capsys.readouterr().err

    def test_dry_run_estimate(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("send", Z_ADDR, T_ADDR, "1", "--dry-run") == 0
        assert "Estimated fee: 0.00015000 ZEC" in capsys.readouterr().out

    def test_dry_run_uri(self, capsys: pytest.CaptureFixture[str]) -> None:
        uri = f"zcash:?address={T_ADDR}&amount=1&address.1={Z_ADDR}&amount.1=2"
        assert _run("send", T_ADDR, "--uri", uri, "--dry-run") == 0
        assert "Estimated fee: 0.00015000 ZEC" in capsys.readouterr().out

    def test_dry_run_rejects_invalid_payment(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("send", Z_ADDR, T_ADDR, "1", "--memo", "hi", "--dry-run") == 1
        assert "Error: Payment 0: memo provided" in capsys.readouterr().err

    def test_wrong_network_source(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("--network", "testnet", "send", T_ADDR, Z_ADDR, "1", "--dry-run") == 1
        assert "invalid address" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


async def _seed_history(dsn: str, viewing_key: str) -> None:
    datastore = Datastore(DatabaseConfig(dsn=dsn))
    await datastore.open()
    try:
        store = WalletStore(datastore)
        account = await store.get_or_create_account(viewing_key)
        await store.add_received_note(
            account.id,
            txid="0a" * 32,
            output_index=0,
            pool=Pool.ORCHARD,
            value=250_000_000,
            height=2_100_000,
            memo="salary, june",
        )
        await store.record_submission("opid-1", Z_ADDR, [Payment.create(T_ADDR, "1")], 10_000)
    finally:
        await datastore.close()


class TestExport:
    def test_keys_from_wallet_file(
        self, wallet_path: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        keystore = SeedKeystore.from_mnemonic(MNEMONIC, Network.MAINNET)
        keystore.save(wallet_path)
        assert _run("--wallet-path", wallet_path, "export", "keys") == 0
        exported = json.loads(capsys.readouterr().out)
        assert exported["network"] == "mainnet"
        assert exported["viewing_key"] == keystore.viewing_key().encoded
        assert exported["transparent_address"] == keystore.transparent_address()
        assert "mnemonic" not in exported

    def test_keys_from_viewing_key(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("export", "keys", "--viewing-key", "uview1example") == 0
        exported = json.loads(capsys.readouterr().out)
        assert exported["viewing_key"] == "uview1example"
        assert exported["transparent_address"] is None

    def test_csv_to_stdout_before_sync(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("export", "csv", "--viewing-key", "uview1example") == 0
        out = capsys.readouterr().out
        assert out.splitlines() == [",".join(AUDIT_COLUMNS)]

    def test_csv_to_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        dsn = f"sqlite+aiosqlite:///{tmp_path / 'wallet.db'}"
        asyncio.run(_seed_history(dsn, "uview1example"))
        output = tmp_path / "audit.csv"
        argv = ("export", "csv", "--viewing-key", "uview1example", "--output", str(output))
        assert _run(*argv) == 0
        assert f"Wrote 2 rows to {output}" in capsys.readouterr().out

        with output.open(newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert [row["direction"] for row in rows] == ["received", "sent"]
        assert rows[0]["amount_zec"] == "2.50000000"
        assert rows[0]["memo"] == "salary, june"
        assert rows[1]["operation_id"] == "opid-1"
        assert rows[1]["status"] == "queued"
        assert rows[1]["fee_zec"] == "0.00010000"


class TestParser:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _run("--version")
        assert exc_info.value.code == 0
        assert "zwallet 0.1.0" in capsys.readouterr().out

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _run()
        assert exc_info.value.code == 2

    def test_info_flags_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _run("info", "--count", "--lightwalletd")
