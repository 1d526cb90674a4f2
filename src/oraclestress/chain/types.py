"""Records produced while setting up a chain for a run."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequestReceipt:
    """A submitted makeRequest transaction and who paid for it."""

    transaction_hash: str
    sponsor_address: str
    sponsor_wallet_address: str


@dataclass
class SponsorWallet:
    """One wallet slot on a chain.

    ``nonce`` is the next nonce this wallet will use. It is only
    touched by the funding branch that owns the wallet.
    """

    address: str
    derivation_index: int
    nonce: int = 0


@dataclass(frozen=True)
class ChainDeployment:
    """Contracts deployed on one chain index and the requests sent to them."""

    chain_index: int
    rrp_address: str
    requester_address: str
    oracle_mnemonic: str
    receipts: tuple[RequestReceipt, ...] = field(default_factory=tuple)

    @property
    def request_count(self) -> int:
        return len(self.receipts)
