"""ChainSetupPipeline: contracts once per chain, then a bounded wallet fan-out."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from oraclestress.chain.contracts import ContractArtifact, load_artifact
from oraclestress.chain.derivation import derive_oracle_address, derive_oracle_xpub
from oraclestress.chain.funding import RequestTarget, WalletFundingProtocol
from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.chain.types import ChainDeployment, SponsorWallet
from oraclestress.chain.wallet import GAS_LIMITS, SequencedSigner
from oraclestress.errors import WalletOperationError
from oraclestress.execution.limiter import ConcurrencyLimiter
from oraclestress.models.config import StressTestConfig, resolve_path

logger = logging.getLogger(__name__)


def load_contract_artifacts(
    config: StressTestConfig,
    base_dir: Path,
) -> tuple[ContractArtifact, ContractArtifact]:
    """Load (rrp, requester) artifacts named in the config."""
    artifacts_dir = resolve_path(base_dir, config.contracts.artifacts_dir)
    return (
        load_artifact(artifacts_dir, config.contracts.rrp),
        load_artifact(artifacts_dir, config.contracts.requester),
    )


class ChainSetupPipeline:
    """Prepares one chain index for a run.

    Args:
        config: Run configuration.
        rpc: Shared RPC client.
        master: Nonce-managed funding signer, shared across chains.
        rrp_artifact: Compiled protocol contract.
        requester_artifact: Compiled requester contract; its
            constructor takes the protocol contract address.
    """

    def __init__(
        self,
        config: StressTestConfig,
        rpc: ResilientRpcClient,
        master: SequencedSigner,
        rrp_artifact: ContractArtifact,
        requester_artifact: ContractArtifact,
    ) -> None:
        self._config = config
        self._rpc = rpc
        self._master = master
        self._rrp_artifact = rrp_artifact
        self._requester_artifact = requester_artifact

    async def _deploy(self, artifact: ContractArtifact, *args: object) -> str:
        receipt = await self._master.send_and_confirm(
            data=artifact.deploy_data(*args),
            gas=GAS_LIMITS["deploy"],
            timeout=self._config.funding.confirmation_timeout_s,
        )
        address = receipt.get("contractAddress")
        if not address:
            raise WalletOperationError(f"{artifact.name} deployment produced no contract address")
        logger.info("Deployed %s at %s", artifact.name, address)
        return to_checksum_address(address)

    async def _apply_gas_cap(self) -> None:
        block = await self._rpc.get_block("latest")
        if block and block.get("gasLimit"):
            self._master.gas_cap = int(block["gasLimit"], 16)

    def sponsor_accounts(self, wallet_count: int) -> list[tuple[SponsorWallet, LocalAccount]]:
        """Fresh random sponsor accounts, one per wallet slot."""
        slots = []
        for index in range(wallet_count):
            account = Account.create()
            slots.append((SponsorWallet(address=account.address, derivation_index=index), account))
        return slots

    async def run(self, chain_index: int, wallet_count: int) -> ChainDeployment:
        """Deploy contracts, fan out wallet funding, and collect receipts.

        Raises:
            WalletOperationError: If either contract fails to deploy.
        """
        if self._config.manual_mining:
            await self._rpc.mine()
        await self._apply_gas_cap()

        rrp_address = await self._deploy(self._rrp_artifact)
        requester_address = await self._deploy(self._requester_artifact, rrp_address)

        mnemonic = self._config.oracle_mnemonic
        protocol = WalletFundingProtocol(
            self._rpc,
            self._master,
            RequestTarget(
                rrp_address=rrp_address,
                requester_address=requester_address,
                oracle_address=derive_oracle_address(mnemonic),
                oracle_xpub=derive_oracle_xpub(mnemonic),
                endpoint_id=self._config.endpoint_id,
            ),
            self._config.funding,
            random_length=self._config.random_length,
            remote_chain=self._config.remote_chain,
        )

        slots = self.sponsor_accounts(wallet_count)
        logger.info("Chain %d: funding %d wallet(s), %d at a time",
                    chain_index, wallet_count, self._config.max_batch_size)
        async with ConcurrencyLimiter(
            self._config.max_batch_size, name=f"chain-{chain_index}-wallets"
        ) as limiter:
            results = await asyncio.gather(
                *(
                    limiter.schedule(
                        lambda w=wallet, a=account: protocol.run(w, a),
                        label=f"wallet-{wallet.derivation_index}",
                    )
                    for wallet, account in slots
                )
            )

        if self._config.manual_mining:
            await self._rpc.mine()

        receipts = tuple(r for r in results if r is not None)
        logger.info("Chain %d: %d/%d request(s) submitted", chain_index, len(receipts), wallet_count)
        return ChainDeployment(
            chain_index=chain_index,
            rrp_address=rrp_address,
            requester_address=requester_address,
            oracle_mnemonic=mnemonic,
            receipts=receipts,
        )
