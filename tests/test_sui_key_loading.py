import base64
import hashlib

import bech32
import pytest

from helpers.sui_keys import (
    InvalidKeyFormat,
    derive_sui_address,
    describe_key_format,
    load_signing_identity,
)


SEED = bytes(range(1, 33))


def _bech32_key(seed: bytes, flag: int = 0) -> str:
    return bech32.bech32_encode("suiprivkey", bech32.convertbits(bytes([flag]) + seed, 8, 5))


def test_every_accepted_encoding_yields_the_same_address():
    expected = load_signing_identity(SEED.hex()).address

    encodings = [
        SEED.hex(),
        "0x" + SEED.hex(),
        base64.b64encode(SEED).decode(),
        base64.b64encode(bytes([0]) + SEED).decode(),
        _bech32_key(SEED),
        "  " + SEED.hex() + "\n",
    ]

    for secret in encodings:
        assert load_signing_identity(secret).address == expected


def test_address_is_blake2b_of_flag_and_public_key():
    identity = load_signing_identity(SEED.hex())

    digest = hashlib.blake2b(b"\x00" + identity.public_key_bytes, digest_size=32).hexdigest()

    assert identity.address == "0x" + digest
    assert len(identity.address) == 66
    assert derive_sui_address(identity.public_key_bytes) == identity.address


def test_loading_is_deterministic():
    first = load_signing_identity(_bech32_key(SEED))
    second = load_signing_identity(_bech32_key(SEED))

    assert first.address == second.address
    assert first.public_key_bytes == second.public_key_bytes


def test_keystring_round_trips_through_loader():
    identity = load_signing_identity(SEED.hex())

    reloaded = load_signing_identity(identity.keystring())

    assert reloaded.address == identity.address
    assert identity.seed() == SEED


def test_seed_followed_by_public_key_uses_the_seed():
    identity = load_signing_identity(SEED.hex())
    combined = SEED + identity.public_key_bytes

    assert load_signing_identity(combined.hex()).address == identity.address


def test_signature_verifies_with_public_key():
    identity = load_signing_identity(SEED.hex())
    signature = identity.sign(b"payload")

    identity.private_key.public_key().verify(signature, b"payload")


@pytest.mark.parametrize(
    "secret, expected",
    [
        ("suiprivkey1abc", "bech32"),
        ("0x" + "ab" * 32, "hex-0x"),
        ("ab" * 32, "hex"),
        ("A" * 44, "base64"),
        ("abcd", "hex-fallback"),
    ],
)
def test_describe_key_format(secret, expected):
    assert describe_key_format(secret) == expected


def test_non_ed25519_bech32_key_names_the_scheme():
    with pytest.raises(InvalidKeyFormat, match="Secp256k1"):
        load_signing_identity(_bech32_key(SEED, flag=1))


def test_non_ed25519_keystore_entry_is_rejected():
    secret = base64.b64encode(bytes([2]) + SEED).decode()

    with pytest.raises(InvalidKeyFormat):
        load_signing_identity(secret)


@pytest.mark.parametrize(
    "secret",
    [
        "",
        "   ",
        "not-a-key",
        "!" * 44,
        "ab" * 16,
        "suiprivkey1qqqqqqqq",
    ],
)
def test_invalid_secrets_raise(secret):
    with pytest.raises(InvalidKeyFormat):
        load_signing_identity(secret)
