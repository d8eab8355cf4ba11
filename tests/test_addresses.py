import base64
import hashlib

import pytest

from cosmos_exporter.clients.addresses import (
    AddressError,
    BechPrefixes,
    consensus_address,
    decode,
    encode,
    validator_to_account,
)


PREFIXES = BechPrefixes.from_global("cosmos")
RAW = bytes(range(20))


def test_encode_decode_keeps_payload():
    address = encode("cosmosvaloper", RAW)

    assert address.startswith("cosmosvaloper1")
    assert decode(address, "cosmosvaloper") == RAW


def test_decode_rejects_wrong_prefix():
    address = encode("cosmos", RAW)
    with pytest.raises(AddressError, match="expected cosmosvaloper"):
        decode(address, "cosmosvaloper")


def test_decode_rejects_bad_checksum():
    address = encode("cosmos", RAW)
    corrupted = address[:-1] + ("q" if address[-1] != "q" else "p")
    with pytest.raises(AddressError):
        decode(corrupted, "cosmos")


@pytest.mark.parametrize("address", ["", "not-an-address", "cosmos1"])
def test_decode_rejects_garbage(address):
    with pytest.raises(AddressError):
        decode(address, "cosmos")


def test_validator_to_account_reencodes_same_bytes():
    valoper = encode(PREFIXES.validator, RAW)
    assert validator_to_account(valoper, PREFIXES) == encode(PREFIXES.account, RAW)


def test_consensus_address_from_ed25519_pubkey():
    key = bytes(32)
    pubkey = {"@type": "/cosmos.crypto.ed25519.PubKey", "key": base64.b64encode(key).decode()}

    address = consensus_address(pubkey, PREFIXES)

    assert address.startswith("cosmosvalcons1")
    assert decode(address, "cosmosvalcons") == hashlib.sha256(key).digest()[:20]


def test_consensus_address_rejects_other_key_types():
    pubkey = {"@type": "/cosmos.crypto.secp256k1.PubKey", "key": base64.b64encode(bytes(33)).decode()}
    with pytest.raises(AddressError):
        consensus_address(pubkey, PREFIXES)


def test_consensus_address_rejects_missing_pubkey():
    with pytest.raises(AddressError):
        consensus_address(None, PREFIXES)
