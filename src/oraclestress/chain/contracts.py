"""Contract artifacts and call encoding for the RRP and requester contracts.

Artifacts are Hardhat build outputs (``abi`` + ``bytecode``) found under
``<artifacts_dir>/<source path>/``. Calls are encoded with eth-abi from
fixed function signatures; the ABI is only consulted for constructor
argument types.
"""

from __future__ import annotations

import json
import secrets
import string
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eth_abi import decode, encode
from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_bytes,
    to_hex,
)

SET_SPONSORSHIP_STATUS = "setSponsorshipStatus(address,bool)"
SPONSORSHIP_STATUS = "sponsorToRequesterToSponsorshipStatus(address,address)"
MAKE_REQUEST = "makeRequest(address,bytes32,address,address,bytes)"

_REQUEST_EVENT_ARGS = "address,bytes32,uint256,uint256,address,bytes32,address,address,address,bytes4,bytes"
MADE_TEMPLATE_REQUEST = f"MadeTemplateRequest({_REQUEST_EVENT_ARGS})"
MADE_FULL_REQUEST = f"MadeFullRequest({_REQUEST_EVENT_ARGS})"
FULFILLED_REQUEST = "FulfilledRequest(address,bytes32,bytes)"
FAILED_REQUEST = "FailedRequest(address,bytes32,string)"


def event_topic(signature: str) -> str:
    return to_hex(event_signature_to_log_topic(signature))


MADE_TEMPLATE_REQUEST_TOPIC = event_topic(MADE_TEMPLATE_REQUEST)
MADE_FULL_REQUEST_TOPIC = event_topic(MADE_FULL_REQUEST)
FULFILLED_REQUEST_TOPIC = event_topic(FULFILLED_REQUEST)
FAILED_REQUEST_TOPIC = event_topic(FAILED_REQUEST)


@dataclass(frozen=True)
class ContractArtifact:
    name: str
    abi: list[dict[str, Any]]
    bytecode: bytes

    def constructor_types(self) -> list[str]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return [arg["type"] for arg in entry.get("inputs", [])]
        return []

    def deploy_data(self, *args: Any) -> bytes:
        """Creation bytecode with ABI-encoded constructor arguments appended."""
        types = self.constructor_types()
        if len(types) != len(args):
            raise ValueError(
                f"{self.name} constructor takes {len(types)} argument(s), got {len(args)}"
            )
        return self.bytecode + (encode(types, list(args)) if types else b"")


def load_artifact(artifacts_dir: Path, source_path: str) -> ContractArtifact:
    """Load the first non-debug JSON artifact for a contract source.

    Raises:
        FileNotFoundError: If the artifact directory has no artifact.
    """
    folder = artifacts_dir / source_path
    candidates = sorted(
        p for p in folder.glob("*.json") if not p.name.endswith(".dbg.json")
    ) if folder.is_dir() else []
    if not candidates:
        raise FileNotFoundError(f"No contract artifact found in {folder}")
    data = json.loads(candidates[0].read_text(encoding="utf-8"))
    return ContractArtifact(
        name=data.get("contractName", candidates[0].stem),
        abi=data["abi"],
        bytecode=to_bytes(hexstr=data["bytecode"]),
    )


def encode_call(signature: str, *args: Any) -> bytes:
    """Selector plus ABI-encoded arguments for a function signature."""
    types = signature[signature.index("(") + 1 : -1]
    arg_types = [t for t in types.split(",") if t]
    return function_signature_to_4byte_selector(signature) + encode(arg_types, list(args))


def decode_bool(data: bytes) -> bool:
    return bool(decode(["bool"], data)[0])


def _bytes32(text: str) -> bytes:
    raw = text.encode("utf-8")
    if len(raw) > 31:
        raise ValueError(f"String too long for bytes32: {text!r}")
    return raw.ljust(32, b"\x00")


def encode_oracle_parameters(parameters: dict[str, str]) -> bytes:
    """Encode bytes32 string parameters in the oracle's ABI format.

    The first word is a header: "1" (format version) followed by one
    type character per parameter ("b" for bytes32). Each parameter
    then contributes its name and value as bytes32 words.
    """
    header = "1" + "b" * len(parameters)
    words = [_bytes32(header)]
    for name, value in parameters.items():
        words += [_bytes32(name), _bytes32(value)]
    return encode(["bytes32"] * len(words), words)


def random_salt(length: int) -> str:
    """Lowercase alphanumeric string used to make requests unique."""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
