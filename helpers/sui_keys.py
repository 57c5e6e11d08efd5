"""Sui signing identity loading.

Secrets arrive from the environment in whatever shape the wallet exported
them: Sui Wallet bech32 (``suiprivkey1...``), hex with or without ``0x``, or
base64 (raw 32-byte seed, or the 33-byte ``sui.keystore`` form with a leading
scheme flag). All of them resolve to an ed25519 seed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass, field

import bech32
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519


BECH32_PREFIX = "suiprivkey"
ED25519_FLAG = 0x00
SEED_LENGTH = 32

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")

_SCHEME_NAMES = {0x00: "ED25519", 0x01: "Secp256k1", 0x02: "Secp256r1"}


class InvalidKeyFormat(ValueError):
    """Raised when a secret matches none of the accepted encodings."""


@dataclass(frozen=True)
class SigningIdentity:
    """ed25519 key pair plus its derived Sui address."""

    private_key: ed25519.Ed25519PrivateKey = field(repr=False)
    public_key_bytes: bytes
    address: str
    key_format: str

    def seed(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def keystring(self) -> str:
        """Return the ``sui.keystore`` form (base64 of flag + seed)."""
        return base64.b64encode(bytes([ED25519_FLAG]) + self.seed()).decode()

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)


def derive_sui_address(public_key_bytes: bytes, flag: int = ED25519_FLAG) -> str:
    digest = hashlib.blake2b(bytes([flag]) + public_key_bytes, digest_size=32).digest()
    return "0x" + digest.hex()


def _decode_bech32(secret: str) -> bytes:
    hrp, data = bech32.bech32_decode(secret)
    if hrp != BECH32_PREFIX or data is None:
        raise InvalidKeyFormat("Malformed bech32 private key")
    decoded = bech32.convertbits(data, 5, 8, False)
    if not decoded or len(decoded) != SEED_LENGTH + 1:
        raise InvalidKeyFormat("Unexpected bech32 private key payload length")
    flag = decoded[0]
    if flag != ED25519_FLAG:
        scheme = _SCHEME_NAMES.get(flag, f"flag {flag}")
        raise InvalidKeyFormat(f"Unsupported key scheme {scheme}; only ED25519 keys can sign swaps")
    return bytes(decoded[1:])


def _decode_hex(value: str) -> bytes:
    body = value[2:] if value.startswith("0x") else value
    if not body or not _HEX_RE.match(body):
        raise InvalidKeyFormat("Private key is not valid hex")
    try:
        return binascii.unhexlify(body)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyFormat(f"Private key is not valid hex: {exc}") from exc


def _decode_base64(value: str) -> bytes:
    if not _BASE64_RE.match(value):
        raise InvalidKeyFormat("Private key is not valid base64")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyFormat(f"Private key is not valid base64: {exc}") from exc
    if len(raw) == SEED_LENGTH + 1:
        if raw[0] != ED25519_FLAG:
            raise InvalidKeyFormat("Keystore entry is not an ED25519 key")
        return raw[1:]
    return raw


def describe_key_format(secret: str) -> str:
    """Name the encoding ``load_signing_identity`` will try first for ``secret``."""
    secret = secret.strip()
    if secret.startswith(BECH32_PREFIX + "1"):
        return "bech32"
    if secret.startswith("0x") and len(secret) == 66:
        return "hex-0x"
    if len(secret) == 64 and _HEX_RE.match(secret):
        return "hex"
    if len(secret) == 44:
        return "base64"
    return "hex-fallback"


def _decode_secret(secret: str, key_format: str) -> bytes:
    if key_format == "bech32":
        return _decode_bech32(secret)
    if key_format in ("hex-0x", "hex"):
        return _decode_hex(secret)
    if key_format == "base64":
        return _decode_base64(secret)
    return _decode_hex(secret if secret.startswith("0x") else "0x" + secret)


def load_signing_identity(secret: str) -> SigningIdentity:
    """Build the signing identity from an exported private key.

    Raises:
        InvalidKeyFormat: the secret is empty, undecodable, or the decoded
            bytes are not an ed25519 seed.
    """
    if not secret or not secret.strip():
        raise InvalidKeyFormat("Private key is empty")

    secret = secret.strip()
    key_format = describe_key_format(secret)
    raw = _decode_secret(secret, key_format)

    # seed || public key, as some exporters emit
    if len(raw) == 2 * SEED_LENGTH:
        raw = raw[:SEED_LENGTH]
    if len(raw) != SEED_LENGTH:
        raise InvalidKeyFormat(
            f"Decoded private key has {len(raw)} bytes; expected a {SEED_LENGTH}-byte ed25519 seed"
        )

    private_key = ed25519.Ed25519PrivateKey.from_private_bytes(raw)
    public_key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return SigningIdentity(
        private_key=private_key,
        public_key_bytes=public_key_bytes,
        address=derive_sui_address(public_key_bytes),
        key_format=key_format,
    )
