"""Bearer tokens for the CDP data API.

CDP API keys come in two shapes: legacy PEM-encoded EC keys (signed with
ES256) and base64 Ed25519 keys (signed with EdDSA). The key string alone does
not say which one it is, so the signers are tried in order and the first one
that accepts the key issues the token.
"""

import base64
import binascii
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from errors import AuthError

logger = logging.getLogger(__name__)

TOKEN_TTL_S = 120
ISSUER = "cdp"


@dataclass(frozen=True)
class SigningResult:
    token: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.token is not None


def normalize_private_key(raw: str) -> str:
    """Env files often carry PEM keys with literal ``\\n`` sequences."""
    return raw.strip().replace("\\n", "\n")


def request_uri(method: str, url: str) -> str:
    """The ``uris`` claim: method, host and path without the scheme."""
    without_scheme = url.split("://", 1)[-1]
    return f"{method.upper()} {without_scheme}"


def _claims(key_name: str, uri: str) -> dict:
    now = int(time.time())
    return {
        "sub": key_name,
        "iss": ISSUER,
        "nbf": now,
        "exp": now + TOKEN_TTL_S,
        "uris": [uri],
    }


def _headers(key_name: str) -> dict:
    return {"kid": key_name, "nonce": secrets.token_hex(16)}


def sign_es256(key_name: str, private_key: str, uri: str) -> SigningResult:
    """Legacy CDP keys: PEM EC private key."""
    if "-----BEGIN" not in private_key:
        return SigningResult(error="not a PEM key")
    try:
        key = serialization.load_pem_private_key(private_key.encode(), password=None)
    except (ValueError, TypeError) as e:
        return SigningResult(error=f"PEM key could not be loaded: {type(e).__name__}")
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        return SigningResult(error="PEM key is not an EC key")
    try:
        token = jwt.encode(_claims(key_name, uri), key, algorithm="ES256", headers=_headers(key_name))
    except jwt.PyJWTError as e:
        return SigningResult(error=f"ES256 signing failed: {type(e).__name__}")
    return SigningResult(token=token)


def sign_eddsa(key_name: str, private_key: str, uri: str) -> SigningResult:
    """Current CDP keys: base64 Ed25519 (64 bytes seed+public, or a bare 32-byte seed)."""
    try:
        decoded = base64.b64decode(private_key, validate=True)
    except (binascii.Error, ValueError):
        return SigningResult(error="not a base64 key")
    if len(decoded) not in (32, 64):
        return SigningResult(error=f"unexpected Ed25519 key length {len(decoded)}")
    key = Ed25519PrivateKey.from_private_bytes(decoded[:32])
    try:
        token = jwt.encode(_claims(key_name, uri), key, algorithm="EdDSA", headers=_headers(key_name))
    except jwt.PyJWTError as e:
        return SigningResult(error=f"EdDSA signing failed: {type(e).__name__}")
    return SigningResult(token=token)


Signer = Callable[[str, str, str], SigningResult]

DEFAULT_SIGNERS: Sequence[Signer] = (sign_es256, sign_eddsa)


def build_bearer_token(
    key_name: str,
    private_key: str,
    uri: str,
    signers: Sequence[Signer] = DEFAULT_SIGNERS,
) -> str:
    """Return a JWT from the first signer that accepts the key, else raise AuthError."""
    key = normalize_private_key(private_key)
    failures = []
    for signer in signers:
        result = signer(key_name, key, uri)
        if result.ok:
            return result.token
        failures.append(f"{signer.__name__}: {result.error}")
    logger.error("No signing strategy accepted the CDP private key (%s)", "; ".join(failures))
    raise AuthError(detail="; ".join(failures), message="Query service credentials are invalid")
