"""Renders the oracle's config.json and secrets.env for one run."""

from __future__ import annotations

import copy
import json
import uuid
from pathlib import Path
from typing import Any

from oraclestress.chain.contracts import random_salt
from oraclestress.models.config import StressTestConfig, resolve_path

DEFAULT_NODE_VERSION = "0.0.1"
STAGE_LENGTH = 6

MOCK_API_URL = "https://i9zjclss79.execute-api.us-east-1.amazonaws.com/default"
MOCK_API_PATH = "/stress-tester-mock-coingecko-api"
_QUERY_FLAGS = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}


def default_template(endpoint_id: str) -> dict[str, Any]:
    """Config skeleton serving one mocked CoinGecko endpoint."""
    ois_title = "CoinGecko basic request"
    return {
        "chains": [],
        "nodeSettings": {
            "airnodeWalletMnemonic": "${AIRNODE_WALLET_MNEMONIC}",
            "heartbeat": {"enabled": False},
            "httpGateway": {"enabled": False},
            "logFormat": "plain",
            "logLevel": "ERROR",
            "stage": "dev",
        },
        "triggers": {
            "rrp": [
                {"endpointId": endpoint_id, "oisTitle": ois_title, "endpointName": "coinMarketData"}
            ]
        },
        "ois": [
            {
                "oisFormat": "1.0.0",
                "title": ois_title,
                "version": "1.0.0",
                "apiSpecifications": {
                    "servers": [{"url": MOCK_API_URL}],
                    "paths": {
                        MOCK_API_PATH: {
                            "get": {
                                "parameters": [{"in": "query", "name": n} for n in _QUERY_FLAGS]
                            }
                        }
                    },
                    "components": {"securitySchemes": {}},
                    "security": {},
                },
                "endpoints": [
                    {
                        "name": "coinMarketData",
                        "operation": {"method": "get", "path": MOCK_API_PATH},
                        "fixedOperationParameters": [
                            {"operationParameter": {"in": "query", "name": n}, "value": v}
                            for n, v in _QUERY_FLAGS.items()
                        ],
                        "reservedParameters": [
                            {"name": "_type", "fixed": "int256"},
                            {"name": "_path", "fixed": "market_data.current_price.usd"},
                            {"name": "_times", "fixed": "1000000"},
                        ],
                        "parameters": [],
                    }
                ],
            }
        ],
        "apiCredentials": [],
    }


def build_oracle_config(
    config: StressTestConfig,
    rrp_addresses: list[str],
    template: dict[str, Any] | None = None,
    stage: str | None = None,
) -> dict[str, Any]:
    """Oracle config with one chain entry per RRP contract and a fresh stage."""
    rendered = copy.deepcopy(template or default_template(config.endpoint_id))
    rendered["nodeSettings"] = {
        **rendered.get("nodeSettings", {}),
        "cloudProvider": config.cloud_provider.as_oracle_setting(),
        "nodeVersion": config.node_version or DEFAULT_NODE_VERSION,
        "stage": stage or random_salt(STAGE_LENGTH),
    }
    rendered["chains"] = [
        {
            "maxConcurrency": 1000,
            "options": {
                "txType": "eip1559",
                "baseFeeMultiplier": "2",
                "priorityFee": {"value": "3.12", "unit": "gwei"},
            },
            "authorizers": [],
            "contracts": {"AirnodeRrp": rrp},
            "id": str(config.chain_id),
            "providers": {f"provider chain {idx}": {"url": "${PROVIDER_URL}"}},
            "type": "evm",
        }
        for idx, rrp in enumerate(rrp_addresses)
    ]
    return rendered


def build_secrets(
    config: StressTestConfig,
    rrp_address: str,
    request_count: int | None = None,
) -> str:
    """Contents of secrets.env for the deployer."""
    lines = [
        f"PROVIDER_URL={config.oracle_provider_url_for(request_count)}",
        f"AIRNODE_WALLET_MNEMONIC={config.oracle_mnemonic}",
        f"AIRNODE_RRP_ADDRESS={rrp_address}",
        f"CHAIN_ID={config.chain_id}",
        f"CLOUD_PROVIDER_TYPE={config.cloud_provider.type}",
        f"HTTP_GATEWAY_API_KEY={uuid.uuid4()}",
    ]
    return "\n".join(lines) + "\n"


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    tmp.replace(path)


def write_deployment_files(
    config: StressTestConfig,
    base_dir: Path,
    rrp_addresses: list[str],
    request_count: int,
) -> str:
    """Write config.json and secrets.env into the deployer work dir.

    Returns:
        The deployment stage, used to find the oracle's logs.
    """
    work_dir = resolve_path(base_dir, config.deployer.work_dir)
    template = None
    if config.deployer.config_template:
        template_path = resolve_path(base_dir, config.deployer.config_template)
        template = json.loads(template_path.read_text(encoding="utf-8"))

    rendered = build_oracle_config(config, rrp_addresses, template)
    _atomic_write(work_dir / "config.json", json.dumps(rendered, indent=2))
    _atomic_write(
        work_dir / "secrets.env",
        build_secrets(config, rrp_addresses[0] if rrp_addresses else "", request_count),
    )
    return rendered["nodeSettings"]["stage"]
