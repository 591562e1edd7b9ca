import json

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from jwt_pinned import AlgorithmId, Family, PrivateKey, SymmetricKey
from jwt_pinned.codec import b64url_decode, b64url_encode

NOW = 1_700_000_000.0

_EC_CURVES = {
    AlgorithmId.ES256: ec.SECP256R1,
    AlgorithmId.ES384: ec.SECP384R1,
    AlgorithmId.ES256K: ec.SECP256K1,
}


@pytest.fixture
def now() -> float:
    """Fixed instant used as the verification clock."""
    return NOW


@pytest.fixture(scope="session")
def rsa_private():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_keys(rsa_private):
    """One signing key handle per supported algorithm.

    Usage in tests:
        key = signing_keys[AlgorithmId.ES256]
    """
    keys = {}
    for alg in AlgorithmId:
        match alg.family:
            case Family.HMAC:
                keys[alg] = SymmetricKey.generate(alg, key_id=f"{alg}-key")
            case Family.RSA_PKCS1 | Family.RSA_PSS:
                keys[alg] = PrivateKey(rsa_private, alg, key_id=f"{alg}-key")
            case Family.ECDSA:
                keys[alg] = PrivateKey(ec.generate_private_key(_EC_CURVES[alg]()), alg, key_id=f"{alg}-key")
            case Family.EDDSA:
                keys[alg] = PrivateKey(ed25519.Ed25519PrivateKey.generate(), alg, key_id=f"{alg}-key")
    return keys


@pytest.fixture(scope="session")
def verifying_keys(signing_keys):
    """Public halves for asymmetric algorithms, the same secret for HMAC."""
    return {
        alg: key if alg.family is Family.HMAC else key.public_handle()
        for alg, key in signing_keys.items()
    }


@pytest.fixture
def hs256_key():
    return SymmetricKey.from_bytes(b"0123456789abcdef0123456789abcdef", AlgorithmId.HS256, key_id="k1")


@pytest.fixture
def make_token():
    """Factory fixture that frames arbitrary segments into a compact token.

    Usage in tests:
        token = make_token({"alg": "HS256"}, {"sub": "x"}, b"sig")
    """

    def _make(header, claims, signature: bytes = b"") -> str:
        def seg(value):
            if isinstance(value, (bytes, bytearray)):
                return b64url_encode(bytes(value))
            return b64url_encode(json.dumps(value).encode("utf-8"))

        return ".".join((seg(header), seg(claims), b64url_encode(signature)))

    return _make


@pytest.fixture
def reheader():
    """Factory fixture that rewrites header fields, keeping claims and signature."""

    def _reheader(token: str, **fields) -> str:
        header_seg, claims_seg, signature_seg = token.split(".")
        header = json.loads(b64url_decode(header_seg))
        header.update(fields)
        new_header = b64url_encode(json.dumps(header).encode("utf-8"))
        return ".".join((new_header, claims_seg, signature_seg))

    return _reheader
