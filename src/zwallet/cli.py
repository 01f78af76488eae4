"""Command-line interface for the Zcash light wallet.

    # Create a wallet file (prints the seed phrase once)
    zwallet --network testnet wallet create

    # Show addresses
    zwallet address transparent --index 3
    zwallet address unified

    # Sync compact blocks from lightwalletd into the local database
    zwallet sync --start-height 2000000

    # Send through a zcashd node and wait for the txid
    zwallet send <from> <to> 0.5 --memo "thanks" --wait
    zwallet send <from> --uri "zcash:<addr>?amount=1.5"

    # Poll a submitted operation
    zwallet status opid-... --wait

    # Disclose the viewing key; write the audit CSV
    zwallet export keys
    zwallet export csv --output audit.csv

Any :class:`~zwallet.errors.WalletError` exits with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import getpass
import json
import logging
import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from zwallet import __version__
from zwallet.chain.lightwalletd.client import LightwalletdClient
from zwallet.chain.rpc.client import ZcashRPCClient
from zwallet.chain.rpc.models import Failed, Succeeded
from zwallet.config.settings import NetworkName, WalletConfig
from zwallet.datastore.client import Datastore
from zwallet.errors import OperationFailed, StorageError, ValidationError, WalletError
from zwallet.metrics.collector import WalletMetrics
from zwallet.sync.engine import SyncEngine
from zwallet.transaction.fees import fee_zatoshis_to_zec, fee_zec_to_zatoshis
from zwallet.transaction.payment import Payment
from zwallet.transaction.payment_request import PaymentRequest
from zwallet.transaction.poller import OperationPoller
from zwallet.transaction.submission import Submission, SubmissionPipeline
from zwallet.transaction.validator import validate_payments
from zwallet.wallet.balance import Balance
from zwallet.wallet.keystore import SeedKeystore, StaticViewingKey
from zwallet.wallet.reporting import export_viewing_keys, write_audit_csv
from zwallet.wallet.store import WalletStore
from zwallet.zcash.amounts import format_zec, zatoshis_to_zec

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from zwallet.sync.engine import SyncProgress
    from zwallet.wallet.keystore import ViewingKeyProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared plumbing
# ---------------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> WalletConfig:
    overrides: dict[str, Any] = {}
    if args.config:
        overrides["config_path"] = args.config
    if args.network:
        overrides["network"] = NetworkName(args.network)
    return WalletConfig(**overrides)


def _wallet_path(args: argparse.Namespace, config: WalletConfig) -> str:
    return args.wallet_path or config.keystore.wallet_path


def _load_keystore(args: argparse.Namespace, config: WalletConfig) -> SeedKeystore:
    keystore = SeedKeystore.load(_wallet_path(args, config))
    if keystore.network != config.zcash_network:
        raise WalletError(
            f"Wallet file is for {keystore.network}, but {config.zcash_network} is selected",
            code="network-mismatch",
        )
    return keystore


def _metrics(config: WalletConfig) -> WalletMetrics | None:
    return WalletMetrics() if config.metrics.enabled else None


def _dump_metrics(metrics: WalletMetrics | None) -> None:
    if metrics is not None:
        sys.stderr.write(metrics.render().decode("utf-8"))


@asynccontextmanager
async def _open_store(config: WalletConfig) -> AsyncIterator[WalletStore]:
    datastore = Datastore(config.db)
    await datastore.open()
    try:
        yield WalletStore(datastore)
    finally:
        await datastore.close()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# wallet
# ---------------------------------------------------------------------------


async def _cmd_wallet_create(args: argparse.Namespace, config: WalletConfig) -> int:
    path = _wallet_path(args, config)
    network = config.zcash_network
    if args.restore:
        words = getpass.getpass("Seed phrase: ")
        keystore = SeedKeystore.from_mnemonic(
            words, network, account=args.account, birthday_height=args.birthday
        )
        if Path(path).expanduser().exists():
            raise StorageError(f"Wallet file already exists: {path}", code="wallet-exists")
        keystore.save(path)
    else:
        keystore = SeedKeystore.create(
            path, network, account=args.account, birthday_height=args.birthday
        )

    print("=" * 60)
    print(f"ZCASH {network.upper()} WALLET")
    print("=" * 60)
    print(f"Wallet file: {path}")
    if not args.restore:
        print()
        print(f"Seed phrase: {keystore.mnemonic}")
        print()
        print("Write the seed phrase down; it is the only way to restore this wallet.")
    print()
    print(f"Transparent address: {keystore.transparent_address()}")
    return 0


async def _cmd_wallet_info(args: argparse.Namespace, config: WalletConfig) -> int:
    keystore = _load_keystore(args, config)
    key = keystore.viewing_key()
    print(f"Network:        {keystore.network}")
    print(f"Account:        {keystore.account}")
    print(f"Birthday:       {keystore.birthday_height}")
    print(f"Viewing key id: {key.fingerprint}")
    print(f"Address:        {keystore.transparent_address()}")
    return 0


async def _cmd_wallet_list(args: argparse.Namespace, config: WalletConfig) -> int:
    async with _open_store(config) as store:
        accounts = await store.list_accounts()
        if not accounts:
            print("No accounts imported yet")
            return 0
        for account in accounts:
            state = await store.latest_chain_state(account.id)
            synced = state.height if state is not None else "-"
            print(
                f"{account.id}  {account.purpose:<9}  birthday {account.birthday_height:>8}  "
                f"synced {synced}  {account.name}"
            )
    return 0


# ---------------------------------------------------------------------------
# address / balance
# ---------------------------------------------------------------------------


async def _cmd_address(args: argparse.Namespace, config: WalletConfig) -> int:
    if args.kind == "transparent":
        keystore = _load_keystore(args, config)
        print(keystore.transparent_address(args.index, change=args.change))
        return 0

    async with ZcashRPCClient.from_config(config.rpc) as rpc:
        if args.kind == "unified":
            receivers = args.receivers.split(",") if args.receivers else None
            print(await rpc.z_getaddressforaccount(args.account, receivers))
        else:
            print(await rpc.z_getnewaddress("sapling"))
    return 0


async def _cmd_balance(args: argparse.Namespace, config: WalletConfig) -> int:
    if args.rpc:
        async with ZcashRPCClient.from_config(config.rpc) as rpc:
            total = await rpc.z_gettotalbalance(args.minconf)
        print(f"Transparent: {format_zec(zatoshis_to_zec(total.transparent))}")
        print(f"Private:     {format_zec(zatoshis_to_zec(total.private))}")
        print(f"Total:       {format_zec(zatoshis_to_zec(total.total))}")
        return 0

    keys = _viewing_keys(args, config)
    async with _open_store(config) as store:
        account = await store.get_account_for_viewing_key(keys.viewing_key().encoded)
        balance = await store.get_balance(account.id) if account is not None else Balance()
    print(balance.describe())
    return 0


def _viewing_keys(args: argparse.Namespace, config: WalletConfig) -> ViewingKeyProvider:
    if getattr(args, "viewing_key", None):
        return StaticViewingKey(args.viewing_key, config.zcash_network)
    return _load_keystore(args, config)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


def _print_progress(progress: SyncProgress) -> None:
    print(
        f"  {progress.current_height - 1:>9} / {progress.end_height}  "
        f"({progress.fraction:6.1%})  {progress.blocks_processed} blocks",
        file=sys.stderr,
    )


async def _cmd_sync(args: argparse.Namespace, config: WalletConfig) -> int:
    keys = _viewing_keys(args, config)
    metrics = _metrics(config)
    if args.endpoint:
        source = LightwalletdClient(args.endpoint, timeout=config.lightwalletd.timeout)
    else:
        source = LightwalletdClient.from_config(config.lightwalletd, config.zcash_network)

    async with _open_store(config) as store, source:
        start = args.start_height
        end = args.end_height
        if start is None:
            start = await _resume_height(store, keys)
            if end is None:
                end = await source.latest_height()
                if start > end:
                    print(f"Already synced to {end}")
                    return 0
        engine = SyncEngine.from_config(
            source,
            store,
            keys,
            config.sync,
            metrics=metrics,
            progress=_print_progress if args.progress else None,
        )
        # Ctrl-C finishes the current batch, then stops.
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, stop.set)
        try:
            result = await engine.sync(start, end, stop=stop)
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

    print(result.describe())
    for failed in result.failed_ranges:
        print(f"  failed {failed.start}..{failed.end}: {failed.reason}")
    _dump_metrics(metrics)
    return 0


async def _resume_height(store: WalletStore, keys: ViewingKeyProvider) -> int:
    """Height after the last recorded chain state, else the wallet birthday."""
    account = await store.get_account_for_viewing_key(keys.viewing_key().encoded)
    if account is not None:
        state = await store.latest_chain_state(account.id)
        if state is not None and not state.is_empty:
            return state.height + 1
        return account.birthday_height
    if isinstance(keys, SeedKeystore):
        return keys.birthday_height
    raise ValidationError(
        "--start-height is required the first time a viewing key is synced",
        code="missing-start-height",
    )


# ---------------------------------------------------------------------------
# send / status / info
# ---------------------------------------------------------------------------


def _fee_arg(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return fee_zec_to_zatoshis(value)
    except ValueError as exc:
        raise ValidationError(f"invalid fee {value!r}: {exc}", code="invalid-fee") from exc


async def _cmd_send(args: argparse.Namespace, config: WalletConfig) -> int:
    if args.uri is None and (args.to is None or args.amount is None):
        raise ValidationError("send needs <to> <amount> or --uri", code="missing-recipient")
    fee = _fee_arg(args.fee)
    metrics = _metrics(config)

    async with ZcashRPCClient.from_config(config.rpc) as rpc:
        pipeline = SubmissionPipeline(rpc, config.zcash_network, metrics=metrics)
        payments = (
            [Payment.create(args.to, args.amount, args.memo, index=0)]
            if args.uri is None
            else _request_payments(args.uri, pipeline)
        )
        if args.dry_run:
            validate_payments(payments, pipeline.network)
            estimate = pipeline.estimate_fee(args.from_address, payments)
            print(f"Estimated fee: {format_zec(fee_zatoshis_to_zec(estimate))}")
            return 0

        operation_id = await pipeline.submit(args.from_address, payments, args.minconf, fee)
        print(f"Operation: {operation_id}")

        async with _open_store(config) as store:
            await store.record_submission(operation_id, args.from_address, payments, fee)
            if args.wait:
                poller = OperationPoller.from_config(rpc, config.poller, metrics=metrics)
                txid = await _wait_and_record(poller, store, operation_id)
                print(f"Transaction: {txid}")
    _dump_metrics(metrics)
    return 0


def _request_payments(uri: str, pipeline: SubmissionPipeline) -> list[Payment]:
    return PaymentRequest.from_uri(uri, pipeline.network).payments


async def _wait_and_record(
    poller: OperationPoller,
    store: WalletStore,
    operation_id: str,
    timeout: float | None = None,
) -> str:
    """Wait for a terminal status and store it for the audit export."""
    try:
        txid = await poller.wait_for_terminal(operation_id, timeout)
    except OperationFailed as exc:
        await store.update_submission(Failed(operation_id, exc.reason, exc.rpc_code))
        raise
    await store.update_submission(Succeeded(operation_id, txid))
    return txid


async def _cmd_status(args: argparse.Namespace, config: WalletConfig) -> int:
    async with ZcashRPCClient.from_config(config.rpc) as rpc, _open_store(config) as store:
        poller = OperationPoller.from_config(rpc, config.poller)
        if args.wait:
            txid = await _wait_and_record(poller, store, args.operation_id, args.timeout)
            print(f"{args.operation_id}: success (txid {txid})")
            return 0
        submission = Submission(args.operation_id)
        submission.status = await poller.check(args.operation_id)
        await store.update_submission(submission.status)
    print(submission.describe())
    return 0


async def _cmd_info(args: argparse.Namespace, config: WalletConfig) -> int:
    if args.lightwalletd:
        async with LightwalletdClient.from_config(
            config.lightwalletd, config.zcash_network
        ) as lwd:
            _print_json((await lwd.get_lightd_info()).to_dict())
        return 0

    async with ZcashRPCClient.from_config(config.rpc) as rpc:
        if args.count:
            print(await rpc.get_block_count())
        elif args.network_info:
            _print_json(await rpc.get_network_info())
        else:
            _print_json((await rpc.get_blockchain_info()).to_dict())
    return 0


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


async def _cmd_export(args: argparse.Namespace, config: WalletConfig) -> int:
    keys = _viewing_keys(args, config)
    if args.kind == "keys":
        _print_json(export_viewing_keys(keys).to_dict())
        return 0

    async with _open_store(config) as store:
        account = await store.get_account_for_viewing_key(keys.viewing_key().encoded)
        notes = await store.list_received_notes(account.id) if account is not None else []
        submissions = await store.list_submissions()

    if args.output is None:
        write_audit_csv(sys.stdout, notes, submissions)
        return 0
    try:
        with Path(args.output).open("w", newline="", encoding="utf-8") as fh:
            count = write_audit_csv(fh, notes, submissions)
    except OSError as exc:
        raise StorageError(f"Cannot write {args.output}: {exc}") from exc
    print(f"Wrote {count} rows to {args.output}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zwallet", description="Zcash light wallet")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--network", choices=[n.value for n in NetworkName], help="override the configured network"
    )
    parser.add_argument("--wallet-path", help="wallet file (default from config)")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    wallet = commands.add_parser("wallet", help="create or inspect the wallet file")
    wallet_cmds = wallet.add_subparsers(dest="wallet_command", required=True)
    create = wallet_cmds.add_parser("create", help="create a new wallet file")
    create.add_argument("--restore", action="store_true", help="restore from a seed phrase")
    create.add_argument("--account", type=int, default=0)
    create.add_argument("--birthday", type=int, default=0, help="first height to sync from")
    create.set_defaults(handler=_cmd_wallet_create)
    wallet_cmds.add_parser("info", help="show wallet details").set_defaults(
        handler=_cmd_wallet_info
    )
    wallet_cmds.add_parser("list", help="list imported accounts").set_defaults(
        handler=_cmd_wallet_list
    )

    address = commands.add_parser("address", help="show a receiving address")
    address.add_argument("kind", choices=["transparent", "unified", "sapling"])
    address.add_argument("--index", type=int, default=0, help="transparent address index")
    address.add_argument("--change", action="store_true", help="use the change chain")
    address.add_argument("--account", type=int, default=0, help="zcashd account (unified)")
    address.add_argument("--receivers", help="comma-separated receiver types (unified)")
    address.set_defaults(handler=_cmd_address)

    balance = commands.add_parser("balance", help="show the wallet balance")
    balance.add_argument("--rpc", action="store_true", help="ask the zcashd node instead")
    balance.add_argument("--minconf", type=int, default=None)
    balance.add_argument("--viewing-key", help="use this viewing key instead of the wallet file")
    balance.set_defaults(handler=_cmd_balance)

    send = commands.add_parser("send", help="send a payment through zcashd")
    send.add_argument("from_address")
    send.add_argument("to", nargs="?")
    send.add_argument("amount", nargs="?", help="amount in ZEC")
    send.add_argument("--memo")
    send.add_argument("--uri", help="ZIP-321 payment request instead of <to> <amount>")
    send.add_argument("--fee", help="explicit fee in ZEC")
    send.add_argument("--minconf", type=int, default=1)
    send.add_argument("--wait", action="store_true", help="wait for the txid")
    send.add_argument("--dry-run", action="store_true", help="only print the fee estimate")
    send.set_defaults(handler=_cmd_send)

    sync = commands.add_parser("sync", help="sync compact blocks from lightwalletd")
    sync.add_argument("--start-height", type=int)
    sync.add_argument("--end-height", type=int)
    sync.add_argument("--endpoint", help="lightwalletd URL")
    sync.add_argument("--viewing-key", help="use this viewing key instead of the wallet file")
    sync.add_argument("--progress", action="store_true", help="print progress per batch")
    sync.set_defaults(handler=_cmd_sync)

    info = commands.add_parser("info", help="show chain information")
    group = info.add_mutually_exclusive_group()
    group.add_argument("--network-info", action="store_true")
    group.add_argument("--count", action="store_true", help="print the block count only")
    group.add_argument("--lightwalletd", action="store_true", help="ask lightwalletd instead")
    info.set_defaults(handler=_cmd_info)

    status = commands.add_parser("status", help="show a submitted operation's status")
    status.add_argument("operation_id")
    status.add_argument("--wait", action="store_true", help="wait for a terminal status")
    status.add_argument("--timeout", type=float, default=None, help="seconds to wait")
    status.set_defaults(handler=_cmd_status)

    export = commands.add_parser("export", help="export data for an auditor")
    export.add_argument("kind", choices=["keys", "csv"])
    export.add_argument("--output", help="CSV file to write (default stdout)")
    export.add_argument("--viewing-key", help="use this viewing key instead of the wallet file")
    export.set_defaults(handler=_cmd_export)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI; returns the process exit status."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _load_config(args)
        return asyncio.run(args.handler(args, config))
    except WalletError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
