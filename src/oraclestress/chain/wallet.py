"""Nonce-sequenced transaction signing.

Each sending address gets one SequencedSigner. Nonce allocation is
serialized under a lock while the broadcasts themselves may overlap,
so concurrent branches sharing the master wallet never collide on a
nonce.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount

from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.errors import WalletOperationError

logger = logging.getLogger(__name__)

# Gas limits per operation; capped by the block gas limit when known
GAS_LIMITS: dict[str, int] = {
    "transfer": 21_000,
    "deploy": 6_000_000,
    "sponsor": 150_000,
    "request": 400_000,
}


def account_from_mnemonic(mnemonic: str, index: int = 0) -> LocalAccount:
    """Account at m/44'/60'/0'/0/{index}."""
    Account.enable_unaudited_hdwallet_features()
    return Account.from_mnemonic(mnemonic, account_path=f"m/44'/60'/0'/0/{index}")


class NonceManager:
    """Hands out nonces for one address.

    The first allocation reads the pending transaction count from the
    node. A nonce given back by ``release`` is served again, lowest
    first, before any fresh one, so nonces already broadcast are never
    reissued. When the released nonce has nothing sent or in flight
    above it, the local state is dropped instead and the next
    allocation re-reads the node.
    """

    def __init__(self, rpc: ResilientRpcClient, address: str) -> None:
        self._rpc = rpc
        self._address = address
        self._next: int | None = None
        self._free: list[int] = []
        self._in_flight: set[int] = set()
        self._highest_sent: int | None = None
        self._lock = asyncio.Lock()

    @property
    def next_nonce(self) -> int | None:
        return self._next

    @property
    def free_nonces(self) -> list[int]:
        return sorted(self._free)

    async def allocate(self) -> int:
        async with self._lock:
            if self._free:
                nonce = heapq.heappop(self._free)
            else:
                if self._next is None:
                    count = await self._rpc.get_transaction_count(self._address, "pending")
                    if count is None:
                        raise WalletOperationError(f"Could not read nonce for {self._address}")
                    self._next = count
                nonce = self._next
                self._next += 1
            self._in_flight.add(nonce)
            return nonce

    async def mark_sent(self, nonce: int) -> None:
        """Record that the node accepted ``nonce``."""
        async with self._lock:
            self._in_flight.discard(nonce)
            if self._highest_sent is None or nonce > self._highest_sent:
                self._highest_sent = nonce

    async def release(self, nonce: int) -> None:
        """Give back a nonce whose broadcast failed."""
        async with self._lock:
            self._in_flight.discard(nonce)
            sent_above = self._highest_sent is not None and self._highest_sent > nonce
            if sent_above or self._in_flight or self._free:
                heapq.heappush(self._free, nonce)
            else:
                self._forget()

    async def reset(self) -> None:
        """Forget everything; the next allocation re-reads the node."""
        async with self._lock:
            self._forget()

    def _forget(self) -> None:
        self._next = None
        self._free.clear()
        self._in_flight.clear()
        self._highest_sent = None


class SequencedSigner:
    """Signs and broadcasts legacy transactions from one account.

    Args:
        account: The local account holding the key.
        rpc: Shared RPC client.
        chain_id: EIP-155 chain id.
        gas_cap: Optional upper bound applied to every gas limit.
    """

    def __init__(
        self,
        account: LocalAccount,
        rpc: ResilientRpcClient,
        chain_id: int,
        gas_cap: int | None = None,
    ) -> None:
        self.account = account
        self._rpc = rpc
        self.chain_id = chain_id
        self.gas_cap = gas_cap
        self.nonces = NonceManager(rpc, account.address)

    @property
    def address(self) -> str:
        return self.account.address

    async def send_transaction(
        self,
        *,
        to: str | None = None,
        value: int = 0,
        data: bytes = b"",
        gas: int = GAS_LIMITS["transfer"],
    ) -> str:
        """Sign and broadcast; returns the transaction hash.

        Raises:
            WalletOperationError: If the gas price or nonce cannot be
                read, or the broadcast fails.
        """
        gas_price = await self._rpc.gas_price()
        if gas_price is None:
            raise WalletOperationError("Could not read gas price")

        nonce = await self.nonces.allocate()
        tx: dict[str, Any] = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": min(gas, self.gas_cap) if self.gas_cap else gas,
            "value": value,
            "data": data,
            "chainId": self.chain_id,
        }
        if to is not None:
            tx["to"] = to

        try:
            signed = self.account.sign_transaction(tx)
            result = await self._rpc.send_raw_transaction(signed.raw_transaction)
        except Exception:
            await self.nonces.release(nonce)
            raise
        if not result.ok:
            await self.nonces.release(nonce)
            raise WalletOperationError(
                f"Broadcast from {self.address} with nonce {nonce} failed: {result.error}"
            )
        await self.nonces.mark_sent(nonce)
        logger.debug("Sent %s from %s nonce=%d", result.value, self.address, nonce)
        return result.value

    async def send_and_confirm(self, timeout: float = 120.0, **tx: Any) -> dict[str, Any]:
        """Send, then wait for one confirmation with a successful status.

        Raises:
            WalletOperationError: On broadcast failure, timeout, or revert.
        """
        tx_hash = await self.send_transaction(**tx)
        receipt = await self._rpc.wait_for_receipt(tx_hash, timeout=timeout)
        if receipt is None:
            raise WalletOperationError(f"Transaction {tx_hash} was not mined within {timeout:.0f}s")
        if receipt.get("status") not in (None, "0x1", 1):
            raise WalletOperationError(f"Transaction {tx_hash} reverted")
        return receipt
