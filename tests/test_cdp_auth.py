import base64

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

import cdp_auth
from errors import AuthError

URI = "POST api.cdp.coinbase.com/platform/v2/data/query/run"


@pytest.fixture(scope="module")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="module")
def ec_pem(ec_key):
    return ec_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="module")
def ed_key():
    return Ed25519PrivateKey.generate()


@pytest.fixture(scope="module")
def ed_b64(ed_key):
    seed = ed_key.private_bytes(
        serialization.Encoding.Raw, serialization.PrivateFormat.Raw, serialization.NoEncryption()
    )
    public = ed_key.public_key().public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    return base64.b64encode(seed + public).decode()


def test_request_uri_drops_scheme():
    url = "https://api.cdp.coinbase.com/platform/v2/data/query/run"
    assert cdp_auth.request_uri("post", url) == URI


def test_pem_key_is_signed_with_es256(ec_key, ec_pem):
    token = cdp_auth.build_bearer_token("organizations/o/apiKeys/k", ec_pem, URI)

    header = jwt.get_unverified_header(token)
    claims = jwt.decode(token, ec_key.public_key(), algorithms=["ES256"])
    assert header["alg"] == "ES256"
    assert header["kid"] == "organizations/o/apiKeys/k"
    assert len(header["nonce"]) == 32
    assert claims["sub"] == "organizations/o/apiKeys/k"
    assert claims["iss"] == "cdp"
    assert claims["uris"] == [URI]
    assert claims["exp"] - claims["nbf"] == cdp_auth.TOKEN_TTL_S


def test_pem_key_with_escaped_newlines(ec_key, ec_pem):
    escaped = ec_pem.replace("\n", "\\n")
    token = cdp_auth.build_bearer_token("key", escaped, URI)
    assert jwt.decode(token, ec_key.public_key(), algorithms=["ES256"])["sub"] == "key"


def test_base64_ed25519_key_falls_through_to_eddsa(ed_key, ed_b64):
    token = cdp_auth.build_bearer_token("key-id", ed_b64, URI)

    assert jwt.get_unverified_header(token)["alg"] == "EdDSA"
    assert jwt.decode(token, ed_key.public_key(), algorithms=["EdDSA"])["uris"] == [URI]


def test_each_signer_reports_instead_of_raising(ec_pem, ed_b64):
    assert cdp_auth.sign_es256("k", ed_b64, URI).ok is False
    assert cdp_auth.sign_eddsa("k", ec_pem, URI).ok is False
    assert cdp_auth.sign_eddsa("k", base64.b64encode(b"short").decode(), URI).error.startswith(
        "unexpected Ed25519 key length"
    )


def test_first_successful_signer_short_circuits():
    calls = []

    def failing(key_name, private_key, uri):
        calls.append("failing")
        return cdp_auth.SigningResult(error="nope")

    def succeeding(key_name, private_key, uri):
        calls.append("succeeding")
        return cdp_auth.SigningResult(token="tok")

    def never(key_name, private_key, uri):
        calls.append("never")
        return cdp_auth.SigningResult(token="other")

    token = cdp_auth.build_bearer_token("k", "secret", URI, signers=(failing, succeeding, never))

    assert token == "tok"
    assert calls == ["failing", "succeeding"]


def test_unusable_key_raises_auth_error():
    with pytest.raises(AuthError) as exc_info:
        cdp_auth.build_bearer_token("k", "definitely not a key!", URI)
    assert "definitely" not in exc_info.value.message
