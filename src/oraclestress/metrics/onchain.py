"""On-chain reconciliation: replay recent RRP events against request ids."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from oraclestress.chain.contracts import (
    FAILED_REQUEST_TOPIC,
    FULFILLED_REQUEST_TOPIC,
    MADE_FULL_REQUEST_TOPIC,
    MADE_TEMPLATE_REQUEST_TOPIC,
)
from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.models.metrics import OnChainMetrics

logger = logging.getLogger(__name__)

REQUEST_TOPICS = frozenset({MADE_TEMPLATE_REQUEST_TOPIC, MADE_FULL_REQUEST_TOPIC})


@dataclass(frozen=True)
class OutstandingRequest:
    request_id: str
    block_number: int
    block_number_delta: int


@dataclass(frozen=True)
class ChainReconciliation:
    metrics: OnChainMetrics
    outstanding: list[OutstandingRequest]


def reconcile_logs(logs: list[dict], current_block: int) -> ChainReconciliation:
    """Classify RRP logs by topic and match requests with their outcome.

    The request id is the second indexed topic of every event.
    Outstanding requests are ordered by age, oldest first.
    """
    requests: dict[str, int] = {}
    fulfilled: set[str] = set()
    failed: set[str] = set()

    for log in logs:
        topics = [t.lower() for t in log.get("topics", [])]
        if len(topics) < 3:
            continue
        topic, request_id = topics[0], topics[2]
        if topic in REQUEST_TOPICS:
            requests[request_id] = int(log.get("blockNumber", "0x0"), 16)
        elif topic == FULFILLED_REQUEST_TOPIC:
            fulfilled.add(request_id)
        elif topic == FAILED_REQUEST_TOPIC:
            failed.add(request_id)

    outstanding = sorted(
        (
            OutstandingRequest(rid, block, current_block - block)
            for rid, block in requests.items()
            if rid not in fulfilled and rid not in failed
        ),
        key=lambda r: r.block_number_delta,
        reverse=True,
    )
    return ChainReconciliation(
        metrics=OnChainMetrics(
            failed_fulfilments=len(failed),
            successful_fulfilments=len(fulfilled),
            made_requests_on_chain=len(requests),
            outstanding_requests=len(outstanding),
        ),
        outstanding=outstanding,
    )


async def _reconcile_chain(
    rpc: ResilientRpcClient,
    rrp_address: str,
    block_window: int,
) -> ChainReconciliation | None:
    current = await rpc.block_number()
    if current is None:
        logger.warning("Reconciliation skipped for %s: no block number", rrp_address)
        return None
    logs = await rpc.get_logs(rrp_address, max(0, current - block_window), current)
    if logs is None:
        logger.warning("Reconciliation skipped for %s: eth_getLogs failed", rrp_address)
        return None
    result = reconcile_logs(logs, current)
    for request in result.outstanding[:10]:
        logger.info("Outstanding request %s (%d blocks old)", request.request_id,
                    request.block_number_delta)
    return result


async def collect_on_chain_metrics(
    rpc: ResilientRpcClient,
    rrp_addresses: list[str],
    block_window: int = 1000,
) -> OnChainMetrics:
    """Sum reconciliation over every chain's RRP contract.

    Chains that cannot be read are skipped. If none can, every field
    is -1.
    """
    results = await asyncio.gather(
        *(_reconcile_chain(rpc, address, block_window) for address in rrp_addresses)
    )
    usable = [r.metrics for r in results if r is not None]
    if not usable:
        return OnChainMetrics.unavailable()
    total = OnChainMetrics()
    for metrics in usable:
        total = total + metrics
    return total
