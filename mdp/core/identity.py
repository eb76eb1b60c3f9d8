"""
Wallet identity.

A Wallet is the actor passed to every lifecycle operation. It exposes an
address and signs transactions; the private key never leaves it.

Wallets can be exported encrypted at rest: the private key is sealed
with Fernet under a key stretched from the password with PBKDF2, salted
with the wallet name.
"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from mdp.crypto import (
    KeyPair,
    generate_keypair,
    keypair_from_private_key,
    sign,
    bytes_to_hex,
    hex_to_bytes,
)
from mdp.core.transaction import Transaction


PBKDF2_ITERATIONS = 100_000


def _fernet(name: str, password: str) -> Fernet:
    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", password.encode(), name.encode(), PBKDF2_ITERATIONS)
    )
    return Fernet(key)


class Wallet:
    """Signing identity backed by a secp256k1 keypair."""

    def __init__(self, keypair: KeyPair, name: str = "default"):
        self._keypair = keypair
        self.name = name

    @classmethod
    def generate(cls, name: str = "default") -> "Wallet":
        return cls(generate_keypair(), name=name)

    @classmethod
    def from_private_key(cls, private_key: bytes, name: str = "default") -> "Wallet":
        return cls(keypair_from_private_key(private_key), name=name)

    @property
    def address(self) -> bytes:
        return self._keypair.address

    @property
    def address_hex(self) -> str:
        return self._keypair.address_hex

    @property
    def public_key(self) -> bytes:
        return self._keypair.public_key

    @property
    def private_key_hex(self) -> str:
        return self._keypair.private_key_hex

    def sign(self, message_hash: bytes) -> bytes:
        return sign(message_hash, self._keypair.private_key)

    def sign_transaction(self, tx: Transaction) -> Transaction:
        tx.sign(self._keypair.private_key)
        return tx

    # =========================================================================
    # Encrypted Export
    # =========================================================================

    def to_encrypted_dict(self, password: str) -> dict:
        token = _fernet(self.name, password).encrypt(self._keypair.private_key)
        return {
            "name": self.name,
            "address": self.address_hex,
            "public_key": bytes_to_hex(self.public_key),
            "encrypted_private_key": token.decode("utf-8"),
        }

    @classmethod
    def from_encrypted_dict(cls, data: dict, password: str) -> Optional["Wallet"]:
        """
        Decrypt an exported wallet.

        Returns:
            Wallet, or None if the password is wrong
        """
        name = data["name"]
        if "private_key" in data:
            # Plaintext export
            return cls.from_private_key(hex_to_bytes(data["private_key"]), name=name)
        try:
            private_key = _fernet(name, password).decrypt(data["encrypted_private_key"].encode())
        except InvalidToken:
            return None
        return cls.from_private_key(private_key, name=name)

    def __repr__(self) -> str:
        return f"Wallet({self.name!r}, {self.address_hex})"
