"""Signing key material for token issuance.

RS256 keys are loaded from base64 encoded DER (PKCS8 private key and X.509
SubjectPublicKeyInfo public key). When none are configured a fresh 2048-bit
pair is generated at startup, which invalidates all tokens on restart.
HS256 uses the configured shared secret.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from systemrpg.core.config import Settings, get_settings
from systemrpg.core.logging import get_logger

logger = get_logger(__name__)

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


class SigningKeyError(Exception):
    """Raised when configured key material cannot be loaded."""

    pass


@dataclass(frozen=True)
class SigningKeys:
    """Key material used to sign and verify tokens.

    Attributes:
        algorithm: JWS algorithm, ``RS256`` or ``HS256``.
        key_id: Value of the ``kid`` header, only used for RS256.
        signing_key: RSA private key or HMAC secret.
        verification_key: RSA public key or HMAC secret.
    """

    algorithm: str
    key_id: str | None
    signing_key: Any
    verification_key: Any

    @property
    def is_asymmetric(self) -> bool:
        return self.algorithm == "RS256"

    def to_jwk(self) -> dict[str, str] | None:
        """Export the public key as a JWK.

        Returns:
            The JWK dict for RS256, or None for HS256 (a shared secret is
            never published).
        """
        if not self.is_asymmetric:
            return None
        numbers = self.verification_key.public_numbers()
        jwk = {
            "kty": "RSA",
            "use": "sig",
            "alg": self.algorithm,
            "n": _base64url_uint(numbers.n),
            "e": _base64url_uint(numbers.e),
        }
        if self.key_id:
            jwk["kid"] = self.key_id
        return jwk

    def jwk_set(self) -> dict[str, list[dict[str, str]]]:
        jwk = self.to_jwk()
        return {"keys": [jwk] if jwk else []}


def _base64url_uint(value: int) -> str:
    """Encode an unsigned integer as unpadded base64url, minimal big-endian."""
    raw = value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)


def encode_key_pair(private_key: rsa.RSAPrivateKey) -> tuple[str, str]:
    """Serialize a key pair to the base64 DER form accepted by settings.

    Returns:
        Tuple of (private key PKCS8, public key SubjectPublicKeyInfo).
    """
    private_der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return (
        base64.b64encode(private_der).decode("ascii"),
        base64.b64encode(public_der).decode("ascii"),
    )


def _load_rsa_pair(private_b64: str, public_b64: str) -> tuple[Any, Any]:
    try:
        private_key = serialization.load_der_private_key(
            base64.b64decode(private_b64.strip(), validate=True), password=None
        )
        public_key = serialization.load_der_public_key(
            base64.b64decode(public_b64.strip(), validate=True)
        )
    except (binascii.Error, ValueError, TypeError) as e:
        raise SigningKeyError("Configured RSA key material could not be loaded") from e

    if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(
        public_key, rsa.RSAPublicKey
    ):
        raise SigningKeyError("Configured keys are not RSA keys")
    if private_key.public_key().public_numbers() != public_key.public_numbers():
        raise SigningKeyError("Configured RSA public key does not match the private key")
    return private_key, public_key


def load_signing_keys(settings: Settings | None = None) -> SigningKeys:
    """Build signing keys from settings.

    Args:
        settings: Optional settings instance. Defaults to the cached settings.

    Returns:
        SigningKeys for the configured algorithm.

    Raises:
        SigningKeyError: If configured RSA material is invalid.
    """
    if settings is None:
        settings = get_settings()

    if settings.jwt_algorithm == "HS256":
        secret = settings.jwt_secret.encode("utf-8")
        return SigningKeys(
            algorithm="HS256",
            key_id=settings.jwt_key_id,
            signing_key=secret,
            verification_key=secret,
        )

    if settings.has_rsa_keys:
        private_key, public_key = _load_rsa_pair(
            settings.jwt_rsa_private_key or "", settings.jwt_rsa_public_key or ""
        )
        logger.info("Loaded configured RSA signing key", key_id=settings.jwt_key_id)
    else:
        logger.warning(
            "No RSA key pair configured, generating an ephemeral key. "
            "Issued tokens will not survive a restart.",
            key_id=settings.jwt_key_id,
            key_size=RSA_KEY_SIZE,
        )
        private_key = generate_rsa_private_key()
        public_key = private_key.public_key()

    return SigningKeys(
        algorithm="RS256",
        key_id=settings.jwt_key_id,
        signing_key=private_key,
        verification_key=public_key,
    )
