# src/murmur/services/crypto.py
"""Hybrid end-to-end encryption for message payloads.

Each message gets a fresh 256-bit AES key. The plaintext is encrypted once
with AES-CBC (random 16-byte IV, PKCS7 padding) and the AES key is wrapped
with RSA-OAEP/SHA-256 once per recipient. Keys are exchanged in the same
encodings a browser WebCrypto client exports: base64 SPKI DER for public
keys and base64 PKCS8 DER for private keys.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from fastapi import status

from murmur.core.errors import MurmurError, ValidationError
from murmur.core.settings import settings

AES_KEY_BYTES = 32
IV_BYTES = 16
MIN_RSA_KEY_BITS = 2048
PUBLIC_EXPONENT = 65537


class CryptoError(MurmurError):
    """Base class for cryptographic precondition failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Cryptographic operation failed"


class EncryptionError(CryptoError):
    """Raised when an envelope cannot be built for every recipient."""

    default_message = "Failed to encrypt message"


class KeyNotFoundError(CryptoError):
    """Raised when the reader has no wrapped key in the envelope."""

    default_message = "No encrypted key found for this user"


class DecryptionError(CryptoError):
    """Raised when an envelope is corrupted or the key does not match."""

    default_message = "Failed to decrypt message"


@dataclass(frozen=True)
class Envelope:
    """Ciphertext plus the metadata needed by each recipient to open it."""

    ciphertext: str
    iv: str
    wrapped_keys: dict[str, str] = field(default_factory=dict)


def _oaep() -> asym_padding.OAEP:
    return asym_padding.OAEP(
        mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class CryptoService:
    """Service handling keypairs and message envelopes."""

    @staticmethod
    def _decode_base64(data: str) -> bytes:
        """Decode a standard or URL-safe base64 string, accepting omitted padding."""
        cleaned = "".join(data.split())
        padding = "=" * (-len(cleaned) % 4)
        try:
            return base64.b64decode(
                (cleaned + padding).replace("-", "+").replace("_", "/"),
                validate=True,
            )
        except (binascii.Error, ValueError) as err:
            raise ValueError(f"Invalid base64 encoding: {err}") from err

    @staticmethod
    def _encode_base64(data: bytes) -> str:
        return base64.b64encode(data).decode()

    @staticmethod
    def generate_identity_keypair(key_size: int | None = None) -> tuple[str, str]:
        """Generate an RSA keypair for a user identity.

        Args:
            key_size: Modulus length in bits (defaults to ``RSA_KEY_SIZE``)

        Returns:
            Tuple of (public_key_b64, private_key_b64)
        """
        private_key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT,
            key_size=key_size or settings.rsa_key_size,
        )
        public_der = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        private_der = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return CryptoService._encode_base64(public_der), CryptoService._encode_base64(private_der)

    @staticmethod
    def load_public_key(public_key_b64: str) -> rsa.RSAPublicKey:
        """Parse a base64 SPKI DER public key.

        Raises:
            ValueError: If the value is not an RSA public key
        """
        der = CryptoService._decode_base64(public_key_b64)
        try:
            key = serialization.load_der_public_key(der)
        except (ValueError, TypeError) as err:
            raise ValueError(f"Invalid public key: {err}") from err
        if not isinstance(key, rsa.RSAPublicKey):
            raise ValueError("Public key must be an RSA key")
        return key

    @staticmethod
    def load_private_key(private_key_b64: str) -> rsa.RSAPrivateKey:
        """Parse a base64 PKCS8 DER private key.

        Raises:
            ValueError: If the value is not an RSA private key
        """
        der = CryptoService._decode_base64(private_key_b64)
        try:
            key = serialization.load_der_private_key(der, password=None)
        except (ValueError, TypeError) as err:
            raise ValueError(f"Invalid private key: {err}") from err
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError("Private key must be an RSA key")
        return key

    @staticmethod
    def validate_public_key(public_key_b64: str) -> str:
        """Validate a public key submitted for publication.

        Returns:
            The key re-encoded in canonical base64

        Raises:
            ValidationError: If the key does not parse or is too short
        """
        try:
            key = CryptoService.load_public_key(public_key_b64)
        except ValueError as err:
            raise ValidationError(str(err)) from err
        if key.key_size < MIN_RSA_KEY_BITS:
            raise ValidationError(f"Public key must be at least {MIN_RSA_KEY_BITS} bits")
        der = key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return CryptoService._encode_base64(der)

    @staticmethod
    def encrypt_for_recipients(
        plaintext: str,
        recipient_public_keys: Mapping[str, str | None],
    ) -> Envelope:
        """Encrypt ``plaintext`` once and wrap the content key for every recipient.

        Args:
            plaintext: Message content
            recipient_public_keys: Mapping of user id to base64 public key; a
                ``None`` value marks a recipient that never initialised encryption

        Returns:
            Envelope with base64 ciphertext, hex IV and base64 wrapped keys

        Raises:
            EncryptionError: If any recipient key is missing or unusable
        """
        if not recipient_public_keys:
            raise EncryptionError("No recipients to encrypt for")

        loaded: dict[str, rsa.RSAPublicKey] = {}
        for user_id, public_key_b64 in recipient_public_keys.items():
            if not public_key_b64:
                raise EncryptionError(f"No public key available for user {user_id}")
            try:
                loaded[user_id] = CryptoService.load_public_key(public_key_b64)
            except ValueError as err:
                raise EncryptionError(f"Unusable public key for user {user_id}") from err

        content_key = secrets.token_bytes(AES_KEY_BYTES)
        iv = secrets.token_bytes(IV_BYTES)

        padder = sym_padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(content_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        wrapped_keys = {
            user_id: CryptoService._encode_base64(public_key.encrypt(content_key, _oaep()))
            for user_id, public_key in loaded.items()
        }
        return Envelope(
            ciphertext=CryptoService._encode_base64(ciphertext),
            iv=iv.hex(),
            wrapped_keys=wrapped_keys,
        )

    @staticmethod
    def decrypt(
        envelope: Envelope,
        self_user_id: str,
        self_private_key: str | rsa.RSAPrivateKey,
    ) -> str:
        """Open an envelope addressed to ``self_user_id``.

        Raises:
            KeyNotFoundError: If the envelope holds no key for this reader
            DecryptionError: If unwrapping or decryption fails
        """
        wrapped = envelope.wrapped_keys.get(self_user_id)
        if not wrapped:
            raise KeyNotFoundError()

        try:
            private_key = (
                CryptoService.load_private_key(self_private_key)
                if isinstance(self_private_key, str)
                else self_private_key
            )
            content_key = private_key.decrypt(CryptoService._decode_base64(wrapped), _oaep())
            if len(content_key) != AES_KEY_BYTES:
                raise ValueError("Unwrapped key has unexpected length")

            iv = bytes.fromhex(envelope.iv)
            if len(iv) != IV_BYTES:
                raise ValueError("IV has unexpected length")

            ciphertext = CryptoService._decode_base64(envelope.ciphertext)
            decryptor = Cipher(algorithms.AES(content_key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, TypeError) as err:
            # UnicodeDecodeError is a ValueError subclass.
            raise DecryptionError() from err
