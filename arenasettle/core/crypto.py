"""
arenasettle/core/crypto.py

Signing authority for on-chain settlement calls.

The authority is the platform admin key that start_game, end_game,
cancel_pending_game, refund_escrow and close_game require as signer.
It is loaded once at startup and injected; nothing mutates it afterwards.

Accepted sources:
    JSON byte array     [12, 34, ...] (64 bytes, Solana CLI keypair format)
    base58 string       64-byte secret key, wallet export format
    PEM file            Ed25519 PKCS8 private key (cryptography)
    file path           containing any of the above
"""

import json
from pathlib import Path
from typing import Union

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
)
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from arenasettle.core.exceptions import KeyLoadError


_PEM_PREFIX = "-----BEGIN"


class AuthorityKey:
    """
    Read-only wrapper around the authority Keypair.

    Public surface:
        AuthorityKey.generate()            → new random key (tests, devnet)
        AuthorityKey.from_value(value)     → JSON array / base58 / path
        AuthorityKey.from_file(path)       → JSON array or PEM file
        AuthorityKey.from_pem(pem_bytes)   → Ed25519 PKCS8 PEM

        key.keypair   (@property) → solders Keypair
        key.pubkey    (@property) → solders Pubkey
        key.to_pem()              → PKCS8 PEM bytes
    """

    def __init__(self, keypair: Keypair) -> None:
        self._keypair = keypair
        self._pubkey  = keypair.pubkey()

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "AuthorityKey":
        return cls(Keypair())

    @classmethod
    def from_json_array(cls, raw: Union[str, list]) -> "AuthorityKey":
        try:
            values = json.loads(raw) if isinstance(raw, str) else raw
            secret = bytes(values)
        except (ValueError, TypeError) as exc:
            raise KeyLoadError(f"Authority key is not a JSON byte array: {exc}") from exc
        if len(secret) != 64:
            raise KeyLoadError(
                f"Authority key must be 64 bytes, got {len(secret)}"
            )
        try:
            return cls(Keypair.from_bytes(secret))
        except ValueError as exc:
            raise KeyLoadError(f"Invalid authority keypair bytes: {exc}") from exc

    @classmethod
    def from_base58(cls, value: str) -> "AuthorityKey":
        try:
            secret = base58.b58decode(value.strip())
        except ValueError as exc:
            raise KeyLoadError(f"Invalid base58 authority key: {exc}") from exc
        return cls.from_json_array(list(secret))

    @classmethod
    def from_pem(cls, pem_bytes: bytes) -> "AuthorityKey":
        try:
            private_key = load_pem_private_key(pem_bytes, password=None)
        except ValueError as exc:
            raise KeyLoadError(f"Invalid PEM authority key: {exc}") from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise KeyLoadError("PEM authority key is not an Ed25519 private key")
        seed = private_key.private_bytes(
            encoding=             Encoding.Raw,
            format=               PrivateFormat.Raw,
            encryption_algorithm= NoEncryption(),
        )
        return cls(Keypair.from_seed(seed))

    @classmethod
    def from_file(cls, path: Path) -> "AuthorityKey":
        path = Path(path)
        if not path.exists():
            raise KeyLoadError(f"Authority key file not found: {path}")
        content = path.read_bytes()
        if content.lstrip().startswith(_PEM_PREFIX.encode("ascii")):
            return cls.from_pem(content)
        return cls.from_json_array(content.decode("utf-8"))

    @classmethod
    def from_value(cls, value: str) -> "AuthorityKey":
        """Dispatch on the shape of a config/env value."""
        if value is None or not str(value).strip():
            raise KeyLoadError("AUTHORITY_KEYPAIR is not set")
        text = str(value).strip()
        if text.startswith("["):
            return cls.from_json_array(text)
        if text.startswith(_PEM_PREFIX):
            return cls.from_pem(text.encode("ascii"))
        if len(text) < 256 and Path(text).expanduser().exists():
            return cls.from_file(Path(text).expanduser())
        return cls.from_base58(text)

    # ── Accessors ─────────────────────────────────────────────

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    def to_pem(self) -> bytes:
        """PKCS8 PEM of the 32-byte seed. Never log the result."""
        private_key = Ed25519PrivateKey.from_private_bytes(self._keypair.secret())
        return private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )

    def __repr__(self) -> str:
        return f"AuthorityKey(pubkey={str(self._pubkey)[:16]}...)"
