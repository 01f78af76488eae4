"""lightwalletd HTTP client — compact blocks, chain tip, transaction relay.

Talks to lightwalletd's ``CompactTxStreamer`` service through a gRPC-JSON
gateway:
- POST /cash.z.wallet.sdk.rpc.CompactTxStreamer/GetLatestBlock
- POST /cash.z.wallet.sdk.rpc.CompactTxStreamer/GetBlockRange (streamed)
- POST /cash.z.wallet.sdk.rpc.CompactTxStreamer/GetTransaction
- POST /cash.z.wallet.sdk.rpc.CompactTxStreamer/SendTransaction
- POST /cash.z.wallet.sdk.rpc.CompactTxStreamer/GetLightdInfo

Server-streaming methods answer with newline-delimited JSON messages.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Self

import httpx

from zwallet.chain.endpoint import validate_endpoint
from zwallet.chain.lightwalletd.models import (
    BlockID,
    CompactBlock,
    LightdInfo,
    RawTransaction,
    SendResponse,
    encode_bytes,
)
from zwallet.errors.chain_errors import RemoteRejected, RemoteUnavailable
from zwallet.zcash.network import Network

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from zwallet.config.settings import LightwalletdConfig

logger = logging.getLogger(__name__)

_SERVICE_PATH = "/cash.z.wallet.sdk.rpc.CompactTxStreamer"

_DEFAULT_ENDPOINTS: dict[Network, list[str]] = {
    Network.MAINNET: [
        "https://mainnet.lightwalletd.com:9067",
        "https://lwd1.zcash-infra.com:9067",
    ],
    Network.TESTNET: ["https://testnet.lightwalletd.com:9067"],
    Network.REGTEST: ["http://localhost:9067"],
}

# Gateway status codes that mean "try again later" rather than "request refused"
_UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


def default_endpoints(network: Network) -> list[str]:
    """Well-known public lightwalletd endpoints for *network*."""
    return list(_DEFAULT_ENDPOINTS[network])


class LightwalletdClient:
    """Async client for a lightwalletd compact block server.

    The endpoint is validated on construction, before any connection is made.

    Usage::

        async with LightwalletdClient("https://lwd.example:9067") as lwd:
            tip = await lwd.latest_height()
            async for block in lwd.block_range(tip - 10, tip):
                ...
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = validate_endpoint(endpoint)
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls,
        config: LightwalletdConfig,
        network: Network,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Build a client from settings, falling back to the network's default endpoint."""
        endpoint = config.url or default_endpoints(network)[0]
        return cls(endpoint, timeout=config.timeout, transport=transport)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._endpoint,
            headers={"Content-Type": "application/json"},
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
    # Public API
    # ------------------------------------------------------------------

    async def get_latest_block(self) -> BlockID:
        """Height and hash of the server's chain tip.

        Raises:
            RemoteUnavailable: If the server cannot be reached.
            RemoteRejected: If the server answers with an error.
        """
        data = await self._unary("GetLatestBlock", {})
        return BlockID.from_dict(data)

    async def latest_height(self) -> int:
        return (await self.get_latest_block()).height

    async def block_range(self, start: int, end: int) -> AsyncIterator[CompactBlock]:
        """Stream compact blocks for the inclusive range ``[start, end]``.

        Blocks are yielded in ascending height order; a server that returns a
        block out of order or outside the requested range is rejected.

        Raises:
            RemoteUnavailable: On transport failure, including mid-stream.
            RemoteRejected: On a server error or an ordering violation.
        """
        body = {"start": {"height": str(start)}, "end": {"height": str(end)}}
        previous: int | None = None
        async for message in self._server_stream("GetBlockRange", body):
            block = CompactBlock.from_dict(message)
            if not start <= block.height <= end:
                msg = f"lightwalletd returned block {block.height} outside range {start}..{end}"
                raise RemoteRejected(msg)
            if previous is not None and block.height <= previous:
                msg = f"lightwalletd returned block {block.height} after block {previous}"
                raise RemoteRejected(msg)
            previous = block.height
            yield block

    async def get_compact_blocks(self, start: int, end: int) -> list[CompactBlock]:
        """Collect :meth:`block_range` into a list."""
        return [block async for block in self.block_range(start, end)]

    async def get_transaction(self, txid: str) -> RawTransaction | None:
        """Fetch a full transaction by txid hex; ``None`` if the server has no data."""
        try:
            txid_bytes = bytes.fromhex(txid)
        except ValueError as exc:
            msg = f"Invalid txid hex: {txid!r}"
            raise ValueError(msg) from exc
        data = await self._unary("GetTransaction", {"hash": encode_bytes(txid_bytes)})
        raw = RawTransaction.from_dict(data)
        return raw if raw.data else None

    async def send_transaction(self, raw_tx: bytes) -> SendResponse:
        """Relay a fully built transaction to the network."""
        data = await self._unary(
            "SendTransaction", {"data": encode_bytes(raw_tx), "height": "0"}
        )
        response = SendResponse.from_dict(data)
        if not response.is_success:
            logger.warning(
                "lightwalletd refused transaction: %s (%d)",
                response.error_message,
                response.error_code,
            )
        return response

    async def get_lightd_info(self) -> LightdInfo:
        data = await self._unary("GetLightdInfo", {})
        return LightdInfo.from_dict(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "lightwalletd client not connected. Call connect() first."
            raise RemoteUnavailable(msg)
        return self._client

    async def _unary(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        client = self._ensure_connected()
        try:
            response = await client.post(f"{_SERVICE_PATH}/{method}", json=body)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"lightwalletd {method} failed: {exc}") from exc

        if response.status_code != 200:
            self._raise_for_status(response.status_code, response.text, method)
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteRejected(f"lightwalletd {method} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RemoteRejected(f"lightwalletd {method} returned a non-object response")
        return data

    async def _server_stream(
        self, method: str, body: dict[str, Any]
    ) -> AsyncIterator[dict[str, Any]]:
        client = self._ensure_connected()
        try:
            async with client.stream("POST", f"{_SERVICE_PATH}/{method}", json=body) as response:
                if response.status_code != 200:
                    await response.aread()
                    self._raise_for_status(response.status_code, response.text, method)
                async for line in response.aiter_lines():
                    if line.strip():
                        yield self._decode_stream_message(line, method)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"lightwalletd {method} stream failed: {exc}") from exc

    @staticmethod
    def _decode_stream_message(line: str, method: str) -> dict[str, Any]:
        """Unwrap one gateway stream message (``{"result": ...}`` or ``{"error": ...}``)."""
        try:
            message = json.loads(line)
        except ValueError as exc:
            raise RemoteRejected(f"lightwalletd {method} streamed invalid JSON") from exc
        if not isinstance(message, dict):
            raise RemoteRejected(f"lightwalletd {method} streamed a non-object message")
        if "error" in message:
            error = message["error"] or {}
            raise RemoteRejected(
                f"lightwalletd {method} failed: {error.get('message', 'unknown error')}",
                rpc_code=error.get("code"),
            )
        return message.get("result", message)

    @staticmethod
    def _raise_for_status(status: int, text: str, method: str) -> None:
        """Raise a chain error from a non-200 gateway response."""
        try:
            body = json.loads(text)
            detail = body.get("message", text) if isinstance(body, dict) else text
            code = body.get("code") if isinstance(body, dict) else None
        except ValueError:
            detail, code = text, None

        message = f"lightwalletd {method} failed ({status}): {detail}"
        if status in _UNAVAILABLE_STATUSES:
            raise RemoteUnavailable(message)
        raise RemoteRejected(message, rpc_code=code)
