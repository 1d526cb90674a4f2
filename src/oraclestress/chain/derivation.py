"""BIP32 key derivation for oracle sponsor wallets.

The oracle publishes the extended public key of m/44'/60'/0'. Anyone
can derive the sponsor wallet the oracle will use for a given sponsor
by walking ``1/c0/c1/c2/c3/c4/c5`` from that key, where ``ci`` are the
six 31-bit chunks of the sponsor address, lowest bits first. Only
public (non-hardened) derivation is needed for that walk, so it works
from the xpub alone.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

import base58
from Crypto.Hash import RIPEMD160
from eth_account import Account
from eth_account.hdaccount import seed_from_mnemonic
from eth_keys import keys
from eth_keys.backends.native.jacobian import fast_add, fast_multiply
from eth_keys.constants import SECPK1_G, SECPK1_N
from eth_utils import is_address, to_checksum_address

HARDENED = 0x80000000
XPUB_VERSION = bytes.fromhex("0488b21e")
ORACLE_XPUB_PATH = "m/44'/60'/0'"
_CHUNK_MASK = (1 << 31) - 1


def _hmac_sha512(key: bytes, data: bytes) -> tuple[bytes, bytes]:
    digest = hmac.new(key, data, hashlib.sha512).digest()
    return digest[:32], digest[32:]


def _hash160(data: bytes) -> bytes:
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def _compress(point: tuple[int, int]) -> bytes:
    x, y = point
    return bytes([2 + (y & 1)]) + x.to_bytes(32, "big")


def _decompress(public_key: bytes) -> tuple[int, int]:
    raw = keys.PublicKey.from_compressed_bytes(public_key).to_bytes()
    return int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")


def _add_tweak(public_key: bytes, tweak: int) -> bytes:
    """Compressed point for public_key + tweak*G.

    eth-keys exposes no public point addition, so this is the one place
    that reaches into its native jacobian backend.
    """
    point = fast_add(fast_multiply(SECPK1_G, tweak), _decompress(public_key))
    return _compress(point)


def _parse_index(segment: str) -> int:
    hardened = segment.endswith("'") or segment.endswith("h")
    number = segment.rstrip("'h")
    if not number.isdigit():
        raise ValueError(f"Invalid path segment: {segment!r}")
    index = int(number)
    if index >= HARDENED:
        raise ValueError(f"Path index out of range: {segment!r}")
    return index + HARDENED if hardened else index


def parse_path(path: str) -> list[int]:
    """Turn ``m/44'/60'/0'`` or ``1/2/3`` into child indexes."""
    segments = [s for s in path.strip().split("/") if s]
    if segments and segments[0] == "m":
        segments = segments[1:]
    return [_parse_index(s) for s in segments]


@dataclass(frozen=True)
class ExtendedPublicKey:
    """A BIP32 public node."""

    public_key: bytes
    chain_code: bytes
    depth: int = 0
    parent_fingerprint: bytes = b"\x00\x00\x00\x00"
    child_number: int = 0

    @property
    def fingerprint(self) -> bytes:
        return _hash160(self.public_key)[:4]

    @property
    def address(self) -> str:
        return keys.PublicKey.from_compressed_bytes(self.public_key).to_checksum_address()

    def child(self, index: int) -> ExtendedPublicKey:
        if index >= HARDENED:
            raise ValueError("Cannot derive a hardened child from a public key")
        tweak, chain_code = _hmac_sha512(self.chain_code, self.public_key + index.to_bytes(4, "big"))
        tweak_int = int.from_bytes(tweak, "big")
        if tweak_int >= SECPK1_N:
            raise ValueError(f"Invalid child key at index {index}")
        return ExtendedPublicKey(
            public_key=_add_tweak(self.public_key, tweak_int),
            chain_code=chain_code,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
        )

    def derive_path(self, path: str) -> ExtendedPublicKey:
        node = self
        for index in parse_path(path):
            node = node.child(index)
        return node

    def to_xpub(self) -> str:
        payload = (
            XPUB_VERSION
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + self.public_key
        )
        return base58.b58encode_check(payload).decode("ascii")

    @classmethod
    def from_xpub(cls, xpub: str) -> ExtendedPublicKey:
        try:
            payload = base58.b58decode_check(xpub)
        except ValueError as exc:
            raise ValueError(f"Invalid extended public key: {exc}") from exc
        if len(payload) != 78 or payload[:4] != XPUB_VERSION:
            raise ValueError("Invalid extended public key: bad length or version")
        return cls(
            depth=payload[4],
            parent_fingerprint=payload[5:9],
            child_number=int.from_bytes(payload[9:13], "big"),
            chain_code=payload[13:45],
            public_key=payload[45:],
        )


@dataclass(frozen=True)
class ExtendedPrivateKey:
    """A BIP32 private node."""

    private_key: bytes
    chain_code: bytes
    depth: int = 0
    parent_fingerprint: bytes = b"\x00\x00\x00\x00"
    child_number: int = 0

    @classmethod
    def from_seed(cls, seed: bytes) -> ExtendedPrivateKey:
        key, chain_code = _hmac_sha512(b"Bitcoin seed", seed)
        return cls(private_key=key, chain_code=chain_code)

    @classmethod
    def from_mnemonic(cls, mnemonic: str, passphrase: str = "") -> ExtendedPrivateKey:
        return cls.from_seed(seed_from_mnemonic(mnemonic, passphrase))

    @property
    def public_key(self) -> bytes:
        return keys.PrivateKey(self.private_key).public_key.to_compressed_bytes()

    def child(self, index: int) -> ExtendedPrivateKey:
        if index >= HARDENED:
            data = b"\x00" + self.private_key + index.to_bytes(4, "big")
        else:
            data = self.public_key + index.to_bytes(4, "big")
        tweak, chain_code = _hmac_sha512(self.chain_code, data)
        key_int = (int.from_bytes(tweak, "big") + int.from_bytes(self.private_key, "big")) % SECPK1_N
        if key_int == 0:
            raise ValueError(f"Invalid child key at index {index}")
        return ExtendedPrivateKey(
            private_key=key_int.to_bytes(32, "big"),
            chain_code=chain_code,
            depth=self.depth + 1,
            parent_fingerprint=_hash160(self.public_key)[:4],
            child_number=index,
        )

    def derive_path(self, path: str) -> ExtendedPrivateKey:
        node = self
        for index in parse_path(path):
            node = node.child(index)
        return node

    def neuter(self) -> ExtendedPublicKey:
        return ExtendedPublicKey(
            public_key=self.public_key,
            chain_code=self.chain_code,
            depth=self.depth,
            parent_fingerprint=self.parent_fingerprint,
            child_number=self.child_number,
        )


def derive_oracle_xpub(mnemonic: str) -> str:
    """Extended public key the oracle shares for sponsor wallet derivation."""
    return ExtendedPrivateKey.from_mnemonic(mnemonic).derive_path(ORACLE_XPUB_PATH).neuter().to_xpub()


def derive_oracle_address(mnemonic: str) -> str:
    """The oracle's own address, m/44'/60'/0'/0/0."""
    Account.enable_unaudited_hdwallet_features()
    return Account.from_mnemonic(mnemonic, account_path=f"{ORACLE_XPUB_PATH}/0/0").address


def derive_wallet_path(sponsor_address: str) -> str:
    """Derivation path below the oracle xpub for a sponsor's wallet.

    Raises:
        ValueError: If ``sponsor_address`` is not a valid address.
    """
    if not is_address(sponsor_address):
        raise ValueError(f"Invalid sponsor address: {sponsor_address!r}")
    value = int(sponsor_address, 16)
    chunks = [str((value >> (31 * i)) & _CHUNK_MASK) for i in range(6)]
    return "1/" + "/".join(chunks)


def verify_xpub(xpub: str, oracle_address: str) -> ExtendedPublicKey:
    """Parse ``xpub`` and check that its 0/0 child is ``oracle_address``.

    Raises:
        ValueError: On a malformed xpub, bad address, or mismatch.
    """
    if not is_address(oracle_address):
        raise ValueError(f"Invalid oracle address: {oracle_address!r}")
    node = ExtendedPublicKey.from_xpub(xpub)
    derived = node.derive_path("0/0").address
    if derived != to_checksum_address(oracle_address):
        raise ValueError(f"xpub does not belong to oracle {oracle_address} (derived {derived})")
    return node


def derive_sponsor_wallet_address(xpub: str, oracle_address: str, sponsor_address: str) -> str:
    """Deterministic sponsor wallet address for (oracle, sponsor). Pure."""
    node = verify_xpub(xpub, oracle_address)
    return node.derive_path(derive_wallet_path(sponsor_address)).address
