"""Algorithm enumeration and registry.

The set of algorithms is closed. Each AlgorithmId fixes a hash function, a
signature scheme and the shape of key it accepts. The registry dispatches a
(algorithm, key material) pair to the matching PyJWT primitive after
confirming the key shape; it never chooses an algorithm from the key's type
or from token data.

Security Notes:
    - Dispatch is a fixed mapping keyed by AlgorithmId values that the caller
      (or the key) provides, never by a raw header string.
    - A key of the wrong shape is a programming error (KeyAlgorithmMismatch),
      raised before any primitive runs.
    - HMAC verification compares MACs in constant time (hmac.compare_digest
      inside PyJWT's HMACAlgorithm).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, Final

from cryptography.exceptions import UnsupportedAlgorithm as CryptoUnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from jwt.algorithms import (
    ECAlgorithm,
    HMACAlgorithm,
    OKPAlgorithm,
    RSAAlgorithm,
    RSAPSSAlgorithm,
)

from .errors import KeyAlgorithmMismatch, KeyFormatError, UnsupportedAlgorithm

if TYPE_CHECKING:
    from .protocols import KeyMaterial, SignaturePrimitive


class Family(Enum):
    """Signature scheme family, which also fixes the expected key shape."""

    HMAC = "HMAC"
    RSA_PKCS1 = "RSA-PKCS1"
    RSA_PSS = "RSA-PSS"
    ECDSA = "ECDSA"
    EDDSA = "EdDSA"

    @property
    def symmetric(self) -> bool:
        return self is Family.HMAC


class AlgorithmId(StrEnum):
    """Supported signing algorithms, valued by their JOSE header name."""

    HS256 = "HS256"
    HS384 = "HS384"
    HS512 = "HS512"
    RS256 = "RS256"
    RS384 = "RS384"
    RS512 = "RS512"
    PS256 = "PS256"
    PS384 = "PS384"
    PS512 = "PS512"
    ES256 = "ES256"
    ES384 = "ES384"
    ES256K = "ES256K"
    EdDSA = "EdDSA"

    @classmethod
    def parse(cls, name: object) -> AlgorithmId:
        """Return the member named ``name``.

        Raises:
            UnsupportedAlgorithm: For any other value, including ``none``.
        """
        if isinstance(name, AlgorithmId):
            return name
        if isinstance(name, str):
            try:
                return cls(name)
            except ValueError:
                pass
        raise UnsupportedAlgorithm(f"Unsupported algorithm: {name!r}")

    @classmethod
    def from_cose(cls, cose_id: object) -> AlgorithmId:
        for alg, profile in _PROFILES.items():
            if profile.cose_id == cose_id and not isinstance(cose_id, bool):
                return alg
        raise UnsupportedAlgorithm(f"Unsupported COSE algorithm: {cose_id!r}")

    @property
    def family(self) -> Family:
        return _PROFILES[self].family

    @property
    def hash_name(self) -> str:
        return _PROFILES[self].hash_name

    @property
    def curve(self) -> str | None:
        """Name of the required elliptic curve (``cryptography`` naming), if any."""
        return _PROFILES[self].curve

    @property
    def cose_id(self) -> int:
        return _PROFILES[self].cose_id

    @property
    def min_secret_length(self) -> int:
        """Minimum HMAC secret length in bytes: the hash output size."""
        if not self.family.symmetric:
            return 0
        return hashlib.new(self.hash_name).digest_size


@dataclass(frozen=True, slots=True)
class _Profile:
    family: Family
    hash_name: str
    cose_id: int
    curve: str | None = None


_PROFILES: Final[dict[AlgorithmId, _Profile]] = {
    AlgorithmId.HS256: _Profile(Family.HMAC, "sha256", 5),
    AlgorithmId.HS384: _Profile(Family.HMAC, "sha384", 6),
    AlgorithmId.HS512: _Profile(Family.HMAC, "sha512", 7),
    AlgorithmId.RS256: _Profile(Family.RSA_PKCS1, "sha256", -257),
    AlgorithmId.RS384: _Profile(Family.RSA_PKCS1, "sha384", -258),
    AlgorithmId.RS512: _Profile(Family.RSA_PKCS1, "sha512", -259),
    AlgorithmId.PS256: _Profile(Family.RSA_PSS, "sha256", -37),
    AlgorithmId.PS384: _Profile(Family.RSA_PSS, "sha384", -38),
    AlgorithmId.PS512: _Profile(Family.RSA_PSS, "sha512", -39),
    AlgorithmId.ES256: _Profile(Family.ECDSA, "sha256", -7, "secp256r1"),
    AlgorithmId.ES384: _Profile(Family.ECDSA, "sha384", -35, "secp384r1"),
    AlgorithmId.ES256K: _Profile(Family.ECDSA, "sha256", -47, "secp256k1"),
    AlgorithmId.EdDSA: _Profile(Family.EDDSA, "ed25519", -8),
}

_PRIMITIVES: Final[dict[AlgorithmId, SignaturePrimitive]] = {
    AlgorithmId.HS256: HMACAlgorithm(HMACAlgorithm.SHA256),
    AlgorithmId.HS384: HMACAlgorithm(HMACAlgorithm.SHA384),
    AlgorithmId.HS512: HMACAlgorithm(HMACAlgorithm.SHA512),
    AlgorithmId.RS256: RSAAlgorithm(RSAAlgorithm.SHA256),
    AlgorithmId.RS384: RSAAlgorithm(RSAAlgorithm.SHA384),
    AlgorithmId.RS512: RSAAlgorithm(RSAAlgorithm.SHA512),
    AlgorithmId.PS256: RSAPSSAlgorithm(RSAPSSAlgorithm.SHA256),
    AlgorithmId.PS384: RSAPSSAlgorithm(RSAPSSAlgorithm.SHA384),
    AlgorithmId.PS512: RSAPSSAlgorithm(RSAPSSAlgorithm.SHA512),
    AlgorithmId.ES256: ECAlgorithm(ECAlgorithm.SHA256),
    AlgorithmId.ES384: ECAlgorithm(ECAlgorithm.SHA384),
    AlgorithmId.ES256K: ECAlgorithm(ECAlgorithm.SHA256),
    AlgorithmId.EdDSA: OKPAlgorithm(),
}

_PRIVATE_TYPES: Final[dict[Family, type]] = {
    Family.RSA_PKCS1: rsa.RSAPrivateKey,
    Family.RSA_PSS: rsa.RSAPrivateKey,
    Family.ECDSA: ec.EllipticCurvePrivateKey,
    Family.EDDSA: ed25519.Ed25519PrivateKey,
}

_PUBLIC_TYPES: Final[dict[Family, type]] = {
    Family.RSA_PKCS1: rsa.RSAPublicKey,
    Family.RSA_PSS: rsa.RSAPublicKey,
    Family.ECDSA: ec.EllipticCurvePublicKey,
    Family.EDDSA: ed25519.Ed25519PublicKey,
}


def is_private_material(algorithm: AlgorithmId, material: KeyMaterial) -> bool:
    """Return True if ``material`` can sign under ``algorithm``."""
    if algorithm.family.symmetric:
        return isinstance(material, bytearray)
    return isinstance(material, _PRIVATE_TYPES[algorithm.family])


def matches_shape(algorithm: AlgorithmId, material: KeyMaterial) -> bool:
    """Return True if ``material`` has the key shape ``algorithm`` expects."""
    family = algorithm.family
    if family.symmetric:
        return isinstance(material, bytearray)
    if not isinstance(material, (_PRIVATE_TYPES[family], _PUBLIC_TYPES[family])):
        return False
    if family is Family.ECDSA:
        return material.curve.name == algorithm.curve  # type: ignore[union-attr]
    return True


def _check_shape(algorithm: AlgorithmId, material: KeyMaterial) -> None:
    if not matches_shape(algorithm, material):
        raise KeyAlgorithmMismatch(
            f"Key material of type {type(material).__name__} cannot be used with {algorithm}"
        )


def sign(algorithm: AlgorithmId, key: KeyMaterial, message: bytes) -> bytes:
    """Sign ``message`` under ``algorithm`` with private or secret ``key``.

    Raises:
        KeyAlgorithmMismatch: If the key does not have the algorithm's shape
            or is a public key.
        KeyFormatError: If the primitive rejects the key material.
    """
    _check_shape(algorithm, key)
    if not is_private_material(algorithm, key):
        raise KeyAlgorithmMismatch(f"A public key cannot sign with {algorithm}")

    try:
        return _PRIMITIVES[algorithm].sign(message, key)
    except (ValueError, TypeError, CryptoUnsupportedAlgorithm) as e:
        raise KeyFormatError(f"Key material rejected by the {algorithm} primitive") from e


def verify(algorithm: AlgorithmId, key: KeyMaterial, message: bytes, signature: bytes) -> bool:
    """Return True if ``signature`` is valid for ``message`` under ``algorithm``.

    Private keys are reduced to their public half before calling the
    primitive. Any primitive failure on well-shaped key material counts as an
    invalid signature.

    Raises:
        KeyAlgorithmMismatch: If the key does not have the algorithm's shape.
    """
    _check_shape(algorithm, key)
    if not algorithm.family.symmetric and is_private_material(algorithm, key):
        key = key.public_key()  # type: ignore[union-attr]

    try:
        return bool(_PRIMITIVES[algorithm].verify(message, key, signature))
    except (ValueError, TypeError, CryptoUnsupportedAlgorithm):
        return False
