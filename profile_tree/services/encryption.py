"""
Profile Tree Encryption Service
ECIES over secp256k1 for securing profile leaf payloads.

The ciphertext layout matches eth-crypto's ``cipher.stringify``:
hex(iv ‖ compressed ephemeral public key ‖ mac ‖ ciphertext).
"""

import os
import hmac
import hashlib
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend

from profile_tree.errors import DecryptionError

IV_SIZE = 16
COMPRESSED_KEY_SIZE = 33
MAC_SIZE = 32
SALT_SIZE = 32


def _strip_hex(value: str) -> str:
    value = value.strip()
    return value[2:] if value.lower().startswith("0x") else value


def load_public_key(public_key: str) -> ec.EllipticCurvePublicKey:
    """
    Load a secp256k1 public key from hex.

    Accepts the 64-byte raw form used by Ethereum tooling as well as
    65-byte uncompressed and 33-byte compressed SEC1 points.
    """
    raw = bytes.fromhex(_strip_hex(public_key))
    if len(raw) == 64:
        raw = b"\x04" + raw
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)


def load_private_key(private_key: str) -> ec.EllipticCurvePrivateKey:
    """Load a 32-byte secp256k1 private key from hex."""
    raw = bytes.fromhex(_strip_hex(private_key))
    if len(raw) != 32:
        raise ValueError("Private key must be 32 bytes (256 bits)")
    return ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256K1(), default_backend())


def _raw_public_hex(key: ec.EllipticCurvePublicKey) -> str:
    point = key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint
    )
    return point[1:].hex()


def public_key_from_private(private_key: str) -> str:
    """Derive the 64-byte raw public key (hex) for a private key."""
    return _raw_public_hex(load_private_key(private_key).public_key())


def generate_keypair() -> Tuple[str, str]:
    """Generate a fresh secp256k1 key pair as (private_hex, public_hex)."""
    key = ec.generate_private_key(ec.SECP256K1(), default_backend())
    private_hex = key.private_numbers().private_value.to_bytes(32, "big").hex()
    return private_hex, _raw_public_hex(key.public_key())


def generate_salt() -> str:
    """Fresh random 32-byte salt, hex-encoded."""
    return os.urandom(SALT_SIZE).hex()


class LeafCipher(ABC):
    """Strategy applied to leaf payloads before they reach the content store."""

    @property
    @abstractmethod
    def encrypts(self) -> bool:
        """Whether stored leaves are encrypted (and salted)."""

    @property
    @abstractmethod
    def decrypts(self) -> bool:
        """Whether fetched encrypted leaves can be decrypted."""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt a payload into its stored text form."""

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored payload back to plaintext."""


class NullCipher(LeafCipher):
    """Stores leaves in the clear."""

    @property
    def encrypts(self) -> bool:
        return False

    @property
    def decrypts(self) -> bool:
        return False

    def encrypt(self, plaintext: str) -> str:
        return plaintext

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext


class EciesCipher(LeafCipher):
    """ECIES (secp256k1, AES-256-CBC, HMAC-SHA256) leaf cipher."""

    def __init__(self, public_key: str = None, private_key: str = None):
        """
        Initialize the cipher.

        Args:
            public_key: Recipient public key (hex), used to encrypt
            private_key: Recipient private key (hex), used to decrypt.
                When given alone, the public key is derived from it.
        """
        if not public_key and not private_key:
            raise ValueError("EciesCipher needs a public or a private key")

        self.private_key = load_private_key(private_key) if private_key else None
        if public_key:
            self.public_key = load_public_key(public_key)
        else:
            self.public_key = self.private_key.public_key()

    @property
    def encrypts(self) -> bool:
        return True

    @property
    def decrypts(self) -> bool:
        return self.private_key is not None

    @staticmethod
    def _derive_keys(shared: bytes) -> Tuple[bytes, bytes]:
        digest = hashlib.sha512(shared).digest()
        return digest[:32], digest[32:]

    @staticmethod
    def _mac(mac_key: bytes, data: bytes) -> bytes:
        h = crypto_hmac.HMAC(mac_key, hashes.SHA256(), backend=default_backend())
        h.update(data)
        return h.finalize()

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a payload for the recipient public key.

        Args:
            plaintext: UTF-8 text to encrypt

        Returns:
            Hex-encoded envelope (iv + ephemeral key + mac + ciphertext)
        """
        ephemeral = ec.generate_private_key(ec.SECP256K1(), default_backend())
        shared = ephemeral.exchange(ec.ECDH(), self.public_key)
        enc_key, mac_key = self._derive_keys(shared)

        # Generate random 16-byte IV
        iv = os.urandom(IV_SIZE)

        # Apply PKCS7 padding
        padder = padding.PKCS7(128).padder()
        padded_data = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        # Create cipher and encrypt
        cipher = Cipher(
            algorithms.AES(enc_key),
            modes.CBC(iv),
            backend=default_backend()
        )
        encryptor = cipher.encryptor()
        ciphertext = encryptor.update(padded_data) + encryptor.finalize()

        ephemeral_public = ephemeral.public_key()
        uncompressed = ephemeral_public.public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint
        )
        compressed = ephemeral_public.public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.CompressedPoint
        )
        mac = self._mac(mac_key, iv + uncompressed + ciphertext)

        return (iv + compressed + mac + ciphertext).hex()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an envelope produced by :meth:`encrypt`.

        Raises:
            DecryptionError: on a missing or mismatched key, or corrupt data
        """
        if self.private_key is None:
            raise DecryptionError("No private key configured for decryption")

        try:
            combined = bytes.fromhex(_strip_hex(ciphertext))
        except ValueError as e:
            raise DecryptionError(f"Ciphertext is not hex-encoded: {e}") from e

        header_size = IV_SIZE + COMPRESSED_KEY_SIZE + MAC_SIZE
        if len(combined) <= header_size:
            raise DecryptionError("Ciphertext is too short")

        iv = combined[:IV_SIZE]
        compressed = combined[IV_SIZE:IV_SIZE + COMPRESSED_KEY_SIZE]
        mac = combined[IV_SIZE + COMPRESSED_KEY_SIZE:header_size]
        body = combined[header_size:]

        try:
            ephemeral_public = ec.EllipticCurvePublicKey.from_encoded_point(
                ec.SECP256K1(), compressed
            )
        except ValueError as e:
            raise DecryptionError(f"Invalid ephemeral public key: {e}") from e

        shared = self.private_key.exchange(ec.ECDH(), ephemeral_public)
        enc_key, mac_key = self._derive_keys(shared)

        uncompressed = ephemeral_public.public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint
        )
        if not hmac.compare_digest(self._mac(mac_key, iv + uncompressed + body), mac):
            raise DecryptionError("MAC mismatch: wrong key or corrupt ciphertext")

        cipher = Cipher(
            algorithms.AES(enc_key),
            modes.CBC(iv),
            backend=default_backend()
        )
        decryptor = cipher.decryptor()
        try:
            padded_data = decryptor.update(body) + decryptor.finalize()

            # Remove PKCS7 padding
            unpadder = padding.PKCS7(128).unpadder()
            data = unpadder.update(padded_data) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError as e:
            raise DecryptionError(f"Corrupt ciphertext: {e}") from e


def build_cipher(public_key: Optional[str] = None, private_key: Optional[str] = None) -> LeafCipher:
    """Pick the cipher matching the configured keys."""
    if public_key or private_key:
        return EciesCipher(public_key=public_key, private_key=private_key)
    return NullCipher()


def compute_data_hash(plaintext: str, salt: str) -> str:
    """Salted proof-of-content hash of a leaf's plaintext."""
    return hashlib.sha3_256((plaintext + salt).encode("utf-8")).hexdigest()


def hashes_match(expected: str, actual: str) -> bool:
    return hmac.compare_digest(expected, actual)
