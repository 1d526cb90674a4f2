"""WalletFundingProtocol: the per-wallet sequence that ends in one request.

    DeriveAddress -> FundSponsorWallet -> FundSponsor
        -> AuthorizeRequester -> SubmitRequest

Steps run strictly in order for one wallet; different wallets run in
parallel under the chain's ConcurrencyLimiter. Each step is a separate
coroutine so it can be exercised on its own against a fake node.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eth_account.signers.local import LocalAccount
from eth_utils import to_bytes

from oraclestress.chain.contracts import (
    MAKE_REQUEST,
    SET_SPONSORSHIP_STATUS,
    SPONSORSHIP_STATUS,
    decode_bool,
    encode_call,
    encode_oracle_parameters,
    random_salt,
)
from oraclestress.chain.derivation import derive_sponsor_wallet_address
from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.chain.types import RequestReceipt, SponsorWallet
from oraclestress.chain.wallet import GAS_LIMITS, SequencedSigner
from oraclestress.errors import WalletOperationError
from oraclestress.models.config import FundingConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestTarget:
    """Everything a wallet needs to know about the chain it requests on."""

    rrp_address: str
    requester_address: str
    oracle_address: str
    oracle_xpub: str
    endpoint_id: str


class WalletFundingProtocol:
    """Runs the funding sequence for wallets on one chain.

    Args:
        rpc: Shared RPC client.
        master: Nonce-managed signer for the funding wallet.
        target: Contracts and oracle identity for this chain.
        funding: Top-up policy.
        random_length: Length of the salt packed into each request.
        remote_chain: Wait for the authorization to be mined before
            requesting (public testnets reorder less predictably).
    """

    def __init__(
        self,
        rpc: ResilientRpcClient,
        master: SequencedSigner,
        target: RequestTarget,
        funding: FundingConfig,
        random_length: int = 10,
        remote_chain: bool = False,
    ) -> None:
        self._rpc = rpc
        self._master = master
        self.target = target
        self._funding = funding
        self._random_length = random_length
        self._remote_chain = remote_chain

    async def run(self, wallet: SponsorWallet, account: LocalAccount) -> RequestReceipt | None:
        """Run every step for one wallet.

        Any failure is logged and turned into None so sibling wallets
        are unaffected.
        """
        signer = SequencedSigner(account, self._rpc, self._master.chain_id, self._master.gas_cap)
        try:
            sponsor_wallet = self.derive_address(account.address)
            await self.fund_sponsor_wallet(sponsor_wallet)
            await self.fund_sponsor(account.address)
            await self.authorize_requester(signer)
            receipt = await self.submit_request(signer, sponsor_wallet)
        except Exception:
            logger.exception(
                "Wallet %d (%s) failed; continuing without its request",
                wallet.derivation_index,
                wallet.address,
            )
            return None
        finally:
            if signer.nonces.next_nonce is not None:
                wallet.nonce = signer.nonces.next_nonce
        logger.info("Wallet %d submitted request %s", wallet.derivation_index, receipt.transaction_hash)
        return receipt

    def derive_address(self, sponsor_address: str) -> str:
        """Step 1: the sponsor wallet the oracle will pay fulfilments from."""
        return derive_sponsor_wallet_address(
            self.target.oracle_xpub, self.target.oracle_address, sponsor_address
        )

    async def _top_up(self, address: str, label: str) -> str | None:
        balance = await self._rpc.get_balance(address)
        if balance is None:
            raise WalletOperationError(f"Could not read balance of {label} {address}")
        if balance > self._funding.low_water_mark_wei:
            logger.debug("%s %s already funded (%d wei)", label, address, balance)
            return None
        receipt = await self._master.send_and_confirm(
            to=address,
            value=self._funding.top_up_wei,
            gas=GAS_LIMITS["transfer"],
            timeout=self._funding.confirmation_timeout_s,
        )
        return receipt.get("transactionHash")

    async def fund_sponsor_wallet(self, sponsor_wallet: str) -> str | None:
        """Step 2: top up the derived sponsor wallet from the master wallet."""
        return await self._top_up(sponsor_wallet, "sponsor wallet")

    async def fund_sponsor(self, sponsor: str) -> str | None:
        """Step 3: top up the sponsor itself so it can pay for its own transactions."""
        return await self._top_up(sponsor, "sponsor")

    async def authorize_requester(self, signer: SequencedSigner) -> str | None:
        """Step 4: sponsor the requester contract, unless already sponsored."""
        status = await self._rpc.eth_call(
            self.target.rrp_address,
            encode_call(SPONSORSHIP_STATUS, signer.address, self.target.requester_address),
        )
        if status and decode_bool(status):
            logger.debug("Requester already sponsored by %s", signer.address)
            return None

        data = encode_call(SET_SPONSORSHIP_STATUS, self.target.requester_address, True)
        if self._remote_chain:
            receipt = await signer.send_and_confirm(
                to=self.target.rrp_address,
                data=data,
                gas=GAS_LIMITS["sponsor"],
                timeout=self._funding.confirmation_timeout_s,
            )
            return receipt.get("transactionHash")
        return await signer.send_transaction(
            to=self.target.rrp_address, data=data, gas=GAS_LIMITS["sponsor"]
        )

    async def submit_request(self, signer: SequencedSigner, sponsor_wallet: str) -> RequestReceipt:
        """Step 5: make a full request with a salted parameter."""
        parameters = encode_oracle_parameters({"coinId": random_salt(self._random_length)})
        data = encode_call(
            MAKE_REQUEST,
            self.target.oracle_address,
            to_bytes(hexstr=self.target.endpoint_id),
            signer.address,
            sponsor_wallet,
            parameters,
        )
        tx_hash = await signer.send_transaction(
            to=self.target.requester_address, data=data, gas=GAS_LIMITS["request"]
        )
        return RequestReceipt(
            transaction_hash=tx_hash,
            sponsor_address=signer.address,
            sponsor_wallet_address=sponsor_wallet,
        )
