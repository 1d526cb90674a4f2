"""Shared fixtures: an in-memory Ethereum node behind httpx.MockTransport."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
import pytest_asyncio
import rlp
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address, to_hex

from oraclestress.chain.contracts import MAKE_REQUEST, SET_SPONSORSHIP_STATUS, SPONSORSHIP_STATUS
from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.chain.wallet import SequencedSigner, account_from_mnemonic
from oraclestress.execution.retry import RetryPolicy
from oraclestress.models.config import DEFAULT_CHAIN_ID, DEFAULT_MASTER_MNEMONIC

SET_SPONSORSHIP_SELECTOR = function_signature_to_4byte_selector(SET_SPONSORSHIP_STATUS)
SPONSORSHIP_SELECTOR = function_signature_to_4byte_selector(SPONSORSHIP_STATUS)
MAKE_REQUEST_SELECTOR = function_signature_to_4byte_selector(MAKE_REQUEST)


@dataclass
class SentTransaction:
    sender: str
    nonce: int
    to: str | None
    value: int
    data: bytes
    tx_hash: str


@dataclass
class FakeChain:
    """Just enough of a dev node for wallet and pipeline tests.

    Transactions are mined instantly, possibly out of nonce order as a
    real mempool would eventually mine them. Reusing a nonce is
    rejected, so any collision between concurrent branches shows up as
    a failure.
    """

    chain_id: int = DEFAULT_CHAIN_ID
    gas_limit: int = 30_000_000
    block: int = 100
    balances: dict[str, int] = field(default_factory=dict)
    nonces: dict[str, int] = field(default_factory=dict)
    used_nonces: dict[str, set[int]] = field(default_factory=dict)
    receipts: dict[str, dict[str, Any]] = field(default_factory=dict)
    sponsorships: set[tuple[str, str]] = field(default_factory=set)
    sent: list[SentTransaction] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)
    reject_selector: bytes | None = None
    reject_remaining: int = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        self.methods.append(method)
        try:
            result = getattr(self, "_" + method)(*body.get("params", []))
        except _RpcError as exc:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": str(exc)}}
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def sent_by(self, address: str) -> list[SentTransaction]:
        return [tx for tx in self.sent if tx.sender == address.lower()]

    # JSON-RPC methods

    def _eth_chainId(self) -> str:
        return hex(self.chain_id)

    def _eth_blockNumber(self) -> str:
        return hex(self.block)

    def _eth_gasPrice(self) -> str:
        return hex(1_000_000_000)

    def _eth_getBalance(self, address: str, _block: str) -> str:
        return hex(self.balances.get(address.lower(), 0))

    def _eth_getTransactionCount(self, address: str, _block: str) -> str:
        return hex(self.nonces.get(address.lower(), 0))

    def _eth_getBlockByNumber(self, _tag: str, _full: bool) -> dict[str, Any]:
        return {"number": hex(self.block), "gasLimit": hex(self.gas_limit)}

    def _eth_call(self, call: dict[str, Any], _block: str) -> str:
        data = bytes.fromhex(call["data"][2:])
        if data[:4] == SPONSORSHIP_SELECTOR:
            sponsor = "0x" + data[4 + 12 : 4 + 32].hex()
            requester = "0x" + data[4 + 44 : 4 + 64].hex()
            status = (sponsor, requester) in self.sponsorships
            return "0x" + ("00" * 31) + ("01" if status else "00")
        return "0x"

    def _eth_sendRawTransaction(self, raw_hex: str) -> str:
        raw = bytes.fromhex(raw_hex[2:])
        sender = Account.recover_transaction(raw).lower()
        fields = rlp.decode(raw)
        nonce = int.from_bytes(fields[0], "big")
        to = "0x" + fields[3].hex() if fields[3] else None
        value = int.from_bytes(fields[4], "big")
        data = bytes(fields[5])

        if self.reject_selector is not None and data[:4] == self.reject_selector and self.reject_remaining:
            self.reject_remaining -= 1
            raise _RpcError("execution reverted")
        used = self.used_nonces.setdefault(sender, set())
        if nonce < self.nonces.get(sender, 0) or nonce in used:
            raise _RpcError(f"nonce too low: {nonce}")
        used.add(nonce)
        next_nonce = self.nonces.get(sender, 0)
        while next_nonce in used:
            next_nonce += 1
        self.nonces[sender] = next_nonce

        tx_hash = to_hex(keccak(raw))
        receipt: dict[str, Any] = {"transactionHash": tx_hash, "status": "0x1", "contractAddress": None}
        if to is None:
            address = keccak(rlp.encode([bytes.fromhex(sender[2:]), nonce]))[12:]
            receipt["contractAddress"] = to_checksum_address(address)
        else:
            self.balances[to] = self.balances.get(to, 0) + value
            if data[:4] == SET_SPONSORSHIP_SELECTOR:
                requester = "0x" + data[4 + 12 : 4 + 32].hex()
                self.sponsorships.add((sender, requester))
        self.receipts[tx_hash] = receipt
        self.sent.append(SentTransaction(sender, nonce, to, value, data, tx_hash))
        self.block += 1
        return tx_hash

    def _eth_getTransactionReceipt(self, tx_hash: str) -> dict[str, Any] | None:
        return self.receipts.get(tx_hash)

    def _eth_getLogs(self, _filter: dict[str, Any]) -> list[dict[str, Any]]:
        return []

    def _evm_mine(self) -> bool:
        self.block += 1
        return True

    def _evm_setAutomine(self, _enabled: bool) -> bool:
        return True

    def _evm_setIntervalMining(self, _interval: int) -> bool:
        return True


class _RpcError(Exception):
    pass


@pytest.fixture
def fake_chain() -> FakeChain:
    master = account_from_mnemonic(DEFAULT_MASTER_MNEMONIC).address.lower()
    return FakeChain(balances={master: 10**24})


@pytest_asyncio.fixture
async def rpc(fake_chain: FakeChain):
    client = ResilientRpcClient(
        "http://fake-node",
        policy=RetryPolicy(max_attempts=2, delay=0.0),
        transport=fake_chain.transport(),
    )
    yield client
    await client.aclose()


@pytest.fixture
def master(rpc: ResilientRpcClient) -> SequencedSigner:
    return SequencedSigner(account_from_mnemonic(DEFAULT_MASTER_MNEMONIC), rpc, DEFAULT_CHAIN_ID)
