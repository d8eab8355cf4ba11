#!/usr/bin/env python3
"""
Bech32 address helpers

Validates caller-supplied addresses against the configured chain prefixes and
converts between account, validator and consensus address forms.
"""

import base64
import hashlib
from dataclasses import dataclass
from typing import List

import bech32


# Consensus addresses are the first 20 bytes of sha256(ed25519 pubkey)
CONSENSUS_ADDRESS_LENGTH = 20

ED25519_PUBKEY_TYPE = "/cosmos.crypto.ed25519.PubKey"


class AddressError(ValueError):
    """Address is not valid bech32 or carries the wrong prefix"""


@dataclass(frozen=True)
class BechPrefixes:
    """Human readable parts used by one chain"""
    account: str
    validator: str
    consensus: str

    @classmethod
    def from_global(cls, prefix: str) -> 'BechPrefixes':
        """Derive the standard Cosmos SDK prefix set from the account prefix"""
        return cls(
            account=prefix,
            validator=f"{prefix}valoper",
            consensus=f"{prefix}valcons"
        )


def decode(address: str, expected_prefix: str) -> bytes:
    """
    Decode a bech32 address and check its prefix

    Args:
        address: bech32 string, e.g. 'cosmosvaloper1...'
        expected_prefix: Required human readable part

    Returns:
        Raw address bytes

    Raises:
        AddressError: invalid checksum, encoding or prefix
    """
    if not address:
        raise AddressError("empty address")

    hrp, data = bech32.bech32_decode(address)
    if hrp is None or data is None:
        raise AddressError(f"invalid bech32 address: {address}")
    if hrp != expected_prefix:
        raise AddressError(f"invalid prefix for {address}: expected {expected_prefix}, got {hrp}")

    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None:
        raise AddressError(f"invalid bech32 payload: {address}")
    return bytes(raw)


def encode(prefix: str, raw: bytes) -> str:
    """Encode raw address bytes with the given prefix"""
    data: List[int] = bech32.convertbits(list(raw), 8, 5, True)
    return bech32.bech32_encode(prefix, data)


def validator_to_account(valoper: str, prefixes: BechPrefixes) -> str:
    """Re-encode a validator operator address as the operator's account address"""
    return encode(prefixes.account, decode(valoper, prefixes.validator))


def consensus_address(pubkey: dict, prefixes: BechPrefixes) -> str:
    """
    Derive the consensus (valcons) address from a validator's consensus pubkey

    Args:
        pubkey: {"@type": "/cosmos.crypto.ed25519.PubKey", "key": "<base64>"}
        prefixes: Chain prefixes

    Raises:
        AddressError: unsupported key type or malformed key
    """
    key_type = pubkey.get("@type") if isinstance(pubkey, dict) else None
    if key_type != ED25519_PUBKEY_TYPE:
        raise AddressError(f"unsupported consensus pubkey type: {key_type}")

    try:
        key = base64.b64decode(pubkey["key"], validate=True)
    except (KeyError, ValueError) as e:
        raise AddressError(f"malformed consensus pubkey: {e}") from e

    digest = hashlib.sha256(key).digest()[:CONSENSUS_ADDRESS_LENGTH]
    return encode(prefixes.consensus, digest)
