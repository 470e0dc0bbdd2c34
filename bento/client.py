"""HTTP client for the node's REST API with retries on transient failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_MIN_DELAY = 0.1  # seconds
DEFAULT_MAX_DELAY = 1.0  # seconds
DEFAULT_TIMEOUT = 30.0  # seconds

_TRANSIENT_STATUSES = frozenset({408, 429})


class ClientError(Exception):
    """Raised when a request to the node fails or returns an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _is_transient(status_code: int) -> bool:
    return status_code in _TRANSIENT_STATUSES or status_code >= 500


class Client:
    """Asynchronous client for a node, retrying transient failures with exponential backoff."""

    def __init__(
        self,
        base_url: str,
        *,
        network: Any = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        min_delay: float = DEFAULT_MIN_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("retry delays must satisfy 0 <= min_delay <= max_delay")
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.max_retries = max_retries
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._http = http if http is not None else httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connections."""
        await self._http.aclose()

    def _delay(self, attempt: int) -> float:
        return min(self.max_delay, self.min_delay * 2**attempt)

    async def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}/{endpoint}"
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._http.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                if attempt == self.max_retries:
                    raise ClientError(f"Request to {url} failed: {exc}") from exc
                logger.debug("Transient error on %s (attempt %d): %s", url, attempt + 1, exc)
            else:
                if not _is_transient(response.status_code) or attempt == self.max_retries:
                    return response
                logger.debug(
                    "Transient status %d on %s (attempt %d)", response.status_code, url, attempt + 1
                )
            await asyncio.sleep(self._delay(attempt))
        raise AssertionError("unreachable")

    @staticmethod
    def _check_status(response: httpx.Response) -> None:
        if not response.is_success:
            raise ClientError(
                f"API returned error status: {response.status_code} {response.reason_phrase}".rstrip(),
                status_code=response.status_code,
            )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ClientError(f"Error decoding response body: {exc}") from exc

    async def _get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._send("GET", endpoint, params=params)
        self._check_status(response)
        return self._decode(response)

    async def get_blocks(self, from_ts: int, to_ts: int) -> Any:
        """List blocks in the given timestamp interval."""
        return await self._get_json("blockflow/blocks", {"fromTs": from_ts, "toTs": to_ts})

    async def get_blocks_and_events(self, from_ts: int, to_ts: int) -> Any:
        """List rich blocks with their events in the given timestamp interval."""
        response = await self._send(
            "GET", "blockflow/rich-blocks", params={"fromTs": from_ts, "toTs": to_ts}
        )
        self._check_status(response)
        try:
            return self._decode(response)
        except ClientError:
            logger.error("Failed to deserialize response for timestamp range %d - %d", from_ts, to_ts)
            raise

    async def get_block(self, block_hash: str) -> Any:
        """Return the block with the given hash."""
        return await self._get_json(f"blockflow/blocks/{block_hash}")

    async def get_block_and_events_by_hash(self, block_hash: str) -> Any:
        """Return the rich block with the given hash, together with its events."""
        return await self._get_json(f"blockflow/rich-blocks/{block_hash}")

    async def get_block_header(self, block_hash: str) -> Any:
        """Return the header of the block with the given hash."""
        return await self._get_json(f"blockflow/headers/{block_hash}")

    async def get_block_hash_by_height(self, height: int, from_group: int, to_group: int) -> list[str]:
        """Return the block hashes at a height on the chain between two groups."""
        data = await self._get_json(
            "blockflow/hashes",
            {"height": height, "fromGroup": from_group, "toGroup": to_group},
        )
        headers = data.get("headers") if isinstance(data, Mapping) else None
        if not isinstance(headers, list):
            raise ClientError("Error decoding response body: missing field `headers`")
        return headers

    async def get_chain_info(self, from_group: int, to_group: int) -> Any:
        """Return chain information for the chain between two groups."""
        return await self._get_json(
            "blockflow/chain-info", {"fromGroup": from_group, "toGroup": to_group}
        )

    async def get_tx_by_hash(self, tx_id: str) -> Any:
        """Return transaction details, or None when the node reports none."""
        return await self._get_json(f"transactions/details/{tx_id}")

    async def get_block_txs(self, block_hash: str, limit: int, offset: int) -> list[Any]:
        """List the transactions of a block, one page at a time."""
        return await self._get_json(
            f"blocks/{block_hash}/transactions", {"limit": limit, "offset": offset}
        )

    async def call_contract(self, params: Mapping[str, Any]) -> Any:
        """Call a contract method without submitting a transaction."""
        response = await self._send(
            "POST",
            "contracts/call-contract",
            json=dict(params),
            headers={"Content-Type": "application/json"},
        )
        self._check_status(response)
        return self._decode(response)