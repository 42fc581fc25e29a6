import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError
from jwt.utils import base64url_decode, base64url_encode

from drivegate.core.config import Settings, is_placeholder
from drivegate.core.errors import ConfigurationError, SigningError

JWT_HEADER = {"alg": "RS256", "typ": "JWT"}

SignFunction = Callable[[dict[str, Any], str], str]


@dataclass(frozen=True)
class ServiceCredential:
    client_email: str
    private_key: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceCredential":
        if is_placeholder(settings.client_email) or is_placeholder(settings.private_key):
            raise ConfigurationError("Service credential is not configured")
        return cls(client_email=settings.client_email, private_key=settings.private_key)

    def __repr__(self) -> str:
        return f"ServiceCredential(client_email={self.client_email!r})"


def _encode_segment(data: dict[str, Any]) -> bytes:
    return base64url_encode(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def _load_private_key(private_key_pem: str) -> RSAPrivateKey:
    algorithm = RSAAlgorithm(RSAAlgorithm.SHA256)
    try:
        key = algorithm.prepare_key(private_key_pem)
    except (InvalidKeyError, ValueError, TypeError) as exc:
        raise SigningError("Private key could not be parsed") from exc
    if not isinstance(key, RSAPrivateKey):
        raise SigningError("Private key is not an RSA private key")
    return key


def sign_rs256(claims: dict[str, Any], private_key_pem: str) -> str:
    key = _load_private_key(private_key_pem)
    signing_input = _encode_segment(JWT_HEADER) + b"." + _encode_segment(claims)
    signature = RSAAlgorithm(RSAAlgorithm.SHA256).sign(signing_input, key)
    return (signing_input + b"." + base64url_encode(signature)).decode("ascii")


def decode_segments(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return the header and claims of a compact token without verifying it."""
    try:
        header_segment, payload_segment, _ = token.split(".")
        header = json.loads(base64url_decode(header_segment))
        claims = json.loads(base64url_decode(payload_segment))
    except ValueError as exc:
        raise SigningError("Malformed compact token") from exc
    return header, claims


class JwtSigner:
    def __init__(self, sign: SignFunction = sign_rs256):
        self._sign = sign

    @staticmethod
    def build_claims(
        issuer: str,
        scope: str,
        audience: str,
        expires_in: int = 3600,
        now: float | None = None,
    ) -> dict[str, Any]:
        issued_at = int(time.time() if now is None else now)
        return {
            "iss": issuer,
            "scope": scope,
            "aud": audience,
            "iat": issued_at,
            "exp": issued_at + expires_in,
        }

    def sign(self, claims: dict[str, Any], private_key_pem: str) -> str:
        return self._sign(claims, private_key_pem)

    def assertion(
        self,
        credential: ServiceCredential,
        scope: str,
        audience: str,
        expires_in: int = 3600,
    ) -> str:
        claims = self.build_claims(credential.client_email, scope, audience, expires_in)
        return self.sign(claims, credential.private_key)
