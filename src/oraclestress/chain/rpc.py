"""ResilientRpcClient: a retrying JSON-RPC client over httpx.

Every call goes through ``retry_call``: transport faults are retried up
to the policy bound, JSON-RPC error objects are returned as rejected
results immediately. Callers receive a Result from ``call`` or a plain
value-or-None from the typed helpers, never an exception.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from eth_utils import keccak, to_hex

from oraclestress.errors import TransientNetworkError
from oraclestress.execution.retry import (
    TRANSIENT_STATUS_CODES,
    FailureKind,
    RejectedError,
    Result,
    RetryPolicy,
    retry_call,
)
from oraclestress.models.config import RpcConfig

logger = logging.getLogger(__name__)


class RpcResponseError(RejectedError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")


def _to_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


class ResilientRpcClient:
    """JSON-RPC client shared by every branch of a run.

    Args:
        url: Node endpoint.
        policy: Retry bound and delay. Defaults to 5 attempts, 50 ms apart.
        timeout: Per-attempt timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
        on_retry: Optional observer called as ``on_retry(method, attempt, max_attempts)``.
    """

    def __init__(
        self,
        url: str,
        *,
        policy: RetryPolicy | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        on_retry: Callable[[str, int, int], Any] | None = None,
    ) -> None:
        self.url = url
        self.policy = policy or RetryPolicy(max_attempts=5, delay=0.05)
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)
        self._ids = itertools.count(1)
        self._on_retry = on_retry

    @classmethod
    def from_config(cls, config: RpcConfig, **kwargs: Any) -> ResilientRpcClient:
        policy = RetryPolicy(
            max_attempts=config.max_attempts,
            delay=config.retry_delay_ms / 1000,
        )
        return cls(config.url, policy=policy, timeout=config.timeout_s, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ResilientRpcClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _post(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = await self._client.post(self.url, json=payload)
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientNetworkError(f"{method} answered HTTP {response.status_code}")
        response.raise_for_status()
        body = response.json()
        error = body.get("error")
        if error:
            raise RpcResponseError(
                error.get("code", -1), error.get("message", "unknown error"), error.get("data")
            )
        return body.get("result")

    async def call(self, method: str, params: list[Any] | None = None) -> Result[Any]:
        """Send one logical JSON-RPC call with retries."""
        params = params or []

        def observe(attempt: int, max_attempts: int) -> None:
            if self._on_retry is not None:
                self._on_retry(method, attempt, max_attempts)

        return await retry_call(
            lambda: self._post(method, params),
            self.policy,
            label=method,
            on_retry=observe,
        )

    async def _value(self, method: str, params: list[Any] | None = None) -> Any:
        result = await self.call(method, params)
        if not result.ok:
            logger.warning("%s gave no result after %d attempt(s): %s",
                           method, result.attempts, result.error)
            return None
        return result.value

    async def chain_id(self) -> int | None:
        return _to_int(await self._value("eth_chainId"))

    async def block_number(self) -> int | None:
        return _to_int(await self._value("eth_blockNumber"))

    async def gas_price(self) -> int | None:
        return _to_int(await self._value("eth_gasPrice"))

    async def get_balance(self, address: str, block: str = "latest") -> int | None:
        return _to_int(await self._value("eth_getBalance", [address, block]))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int | None:
        return _to_int(await self._value("eth_getTransactionCount", [address, block]))

    async def get_block(self, block: str | int = "latest") -> dict[str, Any] | None:
        tag = hex(block) if isinstance(block, int) else block
        return await self._value("eth_getBlockByNumber", [tag, False])

    async def eth_call(self, to: str, data: bytes | str, block: str = "latest") -> bytes | None:
        payload = data if isinstance(data, str) else to_hex(data)
        raw = await self._value("eth_call", [{"to": to, "data": payload}, block])
        if raw is None:
            return None
        return bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int | str = "latest",
        topics: list[str | None] | None = None,
    ) -> list[dict[str, Any]] | None:
        log_filter: dict[str, Any] = {
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        if topics:
            log_filter["topics"] = topics
        return await self._value("eth_getLogs", [log_filter])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self._value("eth_getTransactionReceipt", [tx_hash])

    async def send_raw_transaction(self, raw: bytes) -> Result[str]:
        """Broadcast a signed transaction.

        A retried broadcast whose first attempt reached the node is
        answered with "already known"; that counts as success and the
        locally computed hash is returned.
        """
        tx_hash = to_hex(keccak(raw))
        result = await self.call("eth_sendRawTransaction", [to_hex(raw)])
        if result.ok:
            return Result.success(result.value or tx_hash, attempts=result.attempts)
        if result.kind is FailureKind.rejected and "already known" in (result.error or "").lower():
            return Result.success(tx_hash, attempts=result.attempts)
        return result

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 0.5,
    ) -> dict[str, Any] | None:
        """Poll until the transaction is mined or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                logger.warning("No receipt for %s after %.0fs", tx_hash, timeout)
                return None
            await asyncio.sleep(poll_interval)

    async def mine(self) -> bool:
        return (await self.call("evm_mine")).ok

    async def set_automine(self, enabled: bool) -> bool:
        return (await self.call("evm_setAutomine", [enabled])).ok

    async def set_interval_mining(self, interval_ms: int) -> bool:
        return (await self.call("evm_setIntervalMining", [interval_ms])).ok
