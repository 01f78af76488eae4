"""zcashd JSON-RPC client — chain queries and the Zcash payment API.

zcashd reports RPC errors inside the JSON body, usually with HTTP 500, so the
body is inspected before the status code.
"""

from __future__ import annotations

import itertools
import json
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Self

import httpx

from zwallet.chain.endpoint import validate_endpoint
from zwallet.chain.rpc.models import (
    AddressInfo,
    BlockchainInfo,
    OperationStatus,
    TotalBalance,
    TransactionDetails,
    decode_operation_status,
)
from zwallet.errors.chain_errors import RemoteRejected, RemoteUnavailable
from zwallet.zcash.amounts import zatoshis_to_zec

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from zwallet.config.settings import RPCConfig
    from zwallet.transaction.payment import Payment

logger = logging.getLogger(__name__)


class ZcashRPCClient:
    """Async JSON-RPC client for a zcashd node.

    Usage::

        async with ZcashRPCClient("http://127.0.0.1:8232", user="u", password="p") as rpc:
            info = await rpc.get_blockchain_info()
    """

    def __init__(
        self,
        url: str,
        *,
        user: str = "",
        password: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = validate_endpoint(url)
        self._auth = httpx.BasicAuth(user, password) if user else None
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @classmethod
    def from_config(
        cls, config: RPCConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> Self:
        return cls(
            config.url,
            user=config.user,
            password=config.password,
            timeout=config.timeout,
            transport=transport,
        )

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Invoke *method* and return its ``result``.

        Decimal numbers in the response are kept exact.

        Raises:
            RemoteUnavailable: On connection, DNS, TLS or timeout failures.
            RemoteRejected: If zcashd returns an error object or an unusable response.
        """
        if self._client is None:
            msg = "RPC client not connected. Call connect() first."
            raise RemoteUnavailable(msg)

        request = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = await self._client.post(self._url, json=request)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"RPC {method} failed: {exc}") from exc

        if response.status_code == 401:
            raise RemoteRejected(f"RPC {method} failed: authentication rejected")

        try:
            body = json.loads(response.text, parse_float=Decimal)
        except ValueError:
            if response.status_code >= 500:
                raise RemoteUnavailable(
                    f"RPC {method} failed with status {response.status_code}"
                ) from None
            raise RemoteRejected(
                f"RPC {method} returned a non-JSON response ({response.status_code})"
            ) from None

        if not isinstance(body, dict):
            raise RemoteRejected(f"RPC {method} returned a malformed response")
        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RemoteRejected(f"RPC error {code}: {message}", rpc_code=code)
        if response.status_code != 200:
            raise RemoteRejected(f"RPC {method} failed with status {response.status_code}")
        if "result" not in body:
            raise RemoteRejected(f"RPC {method} response missing result")
        return body["result"]

    # ------------------------------------------------------------------
    # Chain queries
    # ------------------------------------------------------------------

    async def get_blockchain_info(self) -> BlockchainInfo:
        return BlockchainInfo.from_dict(await self.call("getblockchaininfo"))

    async def get_block_count(self) -> int:
        return int(await self.call("getblockcount"))

    async def get_block_hash(self, height: int) -> str:
        return str(await self.call("getblockhash", [height]))

    async def get_block(self, block_hash: str, verbosity: int = 1) -> dict[str, Any]:
        return await self.call("getblock", [block_hash, verbosity])

    async def get_network_info(self) -> dict[str, Any]:
        return await self.call("getnetworkinfo")

    # ------------------------------------------------------------------
    # Zcash payment API
    # ------------------------------------------------------------------

    async def z_getnewaddress(self, address_type: str = "sapling") -> str:
        return str(await self.call("z_getnewaddress", [address_type]))

    async def z_getaddressforaccount(
        self, account: int, receiver_types: list[str] | None = None
    ) -> str:
        """Derive a unified address for a zcashd wallet account."""
        params: list[Any] = [account]
        if receiver_types:
            params.append(receiver_types)
        result = await self.call("z_getaddressforaccount", params)
        return str(result["address"]) if isinstance(result, dict) else str(result)

    async def z_getbalance(self, address: str, minconf: int | None = None) -> Decimal:
        params: list[Any] = [address]
        if minconf is not None:
            params.append(minconf)
        return Decimal(str(await self.call("z_getbalance", params)))

    async def z_gettotalbalance(
        self, minconf: int | None = None, include_watchonly: bool | None = None
    ) -> TotalBalance:
        params: list[Any] = []
        if minconf is not None:
            params.append(minconf)
            if include_watchonly is not None:
                params.append(include_watchonly)
        return TotalBalance.from_dict(await self.call("z_gettotalbalance", params))

    async def z_listaddresses(self) -> list[AddressInfo]:
        result = await self.call("z_listaddresses")
        return [AddressInfo.from_value(item) for item in result or []]

    async def z_viewtransaction(self, txid: str) -> TransactionDetails:
        return TransactionDetails.from_dict(await self.call("z_viewtransaction", [txid]))

    async def z_sendmany(
        self,
        from_address: str,
        payments: Sequence[Payment],
        minconf: int = 1,
        fee: int | None = None,
    ) -> str:
        """Submit a payment batch and return the async operation id.

        Args:
            from_address: Source address held by the zcashd wallet.
            payments: Recipients; memos are sent hex-encoded.
            minconf: Minimum confirmations for spent funds.
            fee: Explicit fee in zatoshis; ``None`` lets zcashd choose.
        """
        params: list[Any] = [from_address, [p.to_rpc() for p in payments], minconf]
        if fee is not None:
            params.append(float(zatoshis_to_zec(fee)))
        operation_id = await self.call("z_sendmany", params)
        if not isinstance(operation_id, str) or not operation_id:
            raise RemoteRejected(f"z_sendmany returned no operation id: {operation_id!r}")
        return operation_id

    async def z_getoperationstatus(self, operation_id: str) -> list[OperationStatus]:
        """Status of one operation; an empty list if zcashd does not know it yet."""
        result = await self.call("z_getoperationstatus", [[operation_id]])
        return [decode_operation_status(record) for record in result or []]

    async def z_getoperationresult(self, operation_id: str) -> list[OperationStatus]:
        """Terminal status of one operation; zcashd forgets it once returned."""
        result = await self.call("z_getoperationresult", [[operation_id]])
        return [decode_operation_status(record) for record in result or []]

    async def z_listoperationids(self) -> list[str]:
        return [str(op) for op in await self.call("z_listoperationids") or []]
