"""Algorithm-bound key handles.

A KeyHandle owns key material exclusively and is tagged at construction with
exactly one AlgorithmId. That tag, never a token header, decides which
algorithm the key may be used with.

Implementations:
- SymmetricKey: HMAC secret bytes, zeroized on destruction
- PrivateKey: RSA / EC / Ed25519 private key, can sign and verify
- PublicKey: RSA / EC / Ed25519 public key, can only verify

Security Notes:
    - Handles are read-only after construction and safe to share between
      threads; assigning an attribute raises AttributeError.
    - Asymmetric material is checked against the algorithm when the handle is
      built: an RSA PEM passed for ES256 fails here with KeyFormatError, never
      later at sign/verify time.
    - Secret bytes are never exposed, logged, pickled or included in repr().
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import warnings
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Final, Self

from cryptography.exceptions import UnsupportedAlgorithm as CryptoUnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from . import algorithms
from .algorithms import AlgorithmId, Family
from .errors import KeyAlgorithmMismatch, KeyFormatError

if TYPE_CHECKING:
    from .protocols import KeyMaterial

logger = logging.getLogger(__name__)

MIN_RSA_MODULUS_BITS: Final[int] = 2048
"""Smallest RSA modulus accepted for RS*/PS* keys."""

_CURVES: Final[dict[str, type[ec.EllipticCurve]]] = {
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp256k1": ec.SECP256K1,
}

_PARSE_ERRORS = (ValueError, TypeError, CryptoUnsupportedAlgorithm)


class InsecureKeyLengthWarning(UserWarning):
    """Emitted when a short HMAC secret is accepted with enforcement disabled."""


def _as_bytes(data: str | bytes | bytearray) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class KeyHandle(ABC):
    """Opaque, algorithm-tagged wrapper around key material.

    Only derived operations (sign/verify) are exposed. Subclasses hold the
    material in a private slot and return it through ``_material`` for the
    registry.

    Attributes:
        algorithm: The one algorithm this key may be used with.
        key_id: Optional identifier copied into the ``kid`` header on signing.
    """

    __slots__ = ("_algorithm", "_key_id")

    def __init__(self, algorithm: AlgorithmId | str, key_id: str | None = None) -> None:
        if key_id is not None and not isinstance(key_id, str):
            raise TypeError("key_id must be a string")
        object.__setattr__(self, "_algorithm", AlgorithmId.parse(algorithm))
        object.__setattr__(self, "_key_id", key_id)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is read-only")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is read-only")

    def __reduce__(self) -> Any:
        raise TypeError(f"{type(self).__name__} cannot be serialized")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(algorithm={self._algorithm}, key_id={self._key_id!r})"

    @property
    def algorithm(self) -> AlgorithmId:
        return self._algorithm

    @property
    def key_id(self) -> str | None:
        return self._key_id

    @property
    @abstractmethod
    def can_sign(self) -> bool: ...

    @property
    @abstractmethod
    def _material(self) -> KeyMaterial: ...

    @abstractmethod
    def with_key_id(self, key_id: str) -> Self:
        """Return a new handle over the same material carrying ``key_id``."""

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` with this key under its bound algorithm.

        Raises:
            KeyAlgorithmMismatch: If this is a public key.
        """
        if not self.can_sign:
            raise KeyAlgorithmMismatch(f"{type(self).__name__} cannot sign")
        return algorithms.sign(self._algorithm, self._material, message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Return True if ``signature`` is valid for ``message`` under this key."""
        return algorithms.verify(self._algorithm, self._material, message, signature)

    @classmethod
    def from_pem(
        cls,
        data: str | bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PrivateKey | PublicKey:
        """Load a private (PKCS8 / traditional) or public (SPKI) PEM key.

        Raises:
            KeyFormatError: If the PEM cannot be parsed or does not fit ``algorithm``.
        """
        return _wrap(_load_pem(_as_bytes(data), password), algorithm, key_id)

    @classmethod
    def from_der(
        cls,
        data: bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PrivateKey | PublicKey:
        """Load a private (PKCS8) or public (SPKI) DER key.

        Raises:
            KeyFormatError: If the DER cannot be parsed or does not fit ``algorithm``.
        """
        return _wrap(_load_der(bytes(data), password), algorithm, key_id)


class SymmetricKey(KeyHandle):
    """HMAC secret bound to one of HS256/HS384/HS512.

    The secret lives in a ``bytearray`` that is overwritten with zeros by
    ``zeroize()``, on context-manager exit, and when the handle is garbage
    collected. A zeroized key refuses every operation.

    Example:
        ```python
        with SymmetricKey.from_bytes(secret, AlgorithmId.HS256, key_id="k1") as key:
            token = JWTSigner(key).sign(claims)
        ```
    """

    __slots__ = ("_secret",)

    def __init__(
        self,
        secret: str | bytes | bytearray,
        algorithm: AlgorithmId | str = AlgorithmId.HS256,
        *,
        key_id: str | None = None,
        enforce_min_length: bool = True,
    ) -> None:
        """Initialize the key.

        Args:
            secret: Raw secret. A ``str`` is UTF-8 encoded.
            algorithm: HMAC algorithm the key is bound to.
            key_id: Optional ``kid`` value.
            enforce_min_length: When False, a secret shorter than the hash
                output only triggers InsecureKeyLengthWarning.

        Raises:
            KeyFormatError: If the algorithm is not HMAC, the secret is empty,
                or it is too short while enforcement is on.
        """
        super().__init__(algorithm, key_id)
        if not self._algorithm.family.symmetric:
            raise KeyFormatError(f"A symmetric secret cannot be bound to {self._algorithm}")

        material = bytearray(secret.encode("utf-8") if isinstance(secret, str) else secret)
        if not material:
            raise KeyFormatError("HMAC secret must not be empty")

        min_len = self._algorithm.min_secret_length
        if len(material) < min_len:
            msg = (
                f"The specified key is {len(material)} bytes long, which is below "
                f"the minimum recommended length of {min_len} bytes for {self._algorithm}."
            )
            if enforce_min_length:
                material[:] = bytes(len(material))
                raise KeyFormatError(msg)
            logger.warning("Accepting short HMAC secret for %s (kid=%s)", self._algorithm, key_id)
            warnings.warn(msg, InsecureKeyLengthWarning, stacklevel=3)

        object.__setattr__(self, "_secret", material)

    @classmethod
    def from_bytes(
        cls,
        secret: str | bytes | bytearray,
        algorithm: AlgorithmId | str = AlgorithmId.HS256,
        *,
        key_id: str | None = None,
        enforce_min_length: bool = True,
    ) -> SymmetricKey:
        return cls(secret, algorithm, key_id=key_id, enforce_min_length=enforce_min_length)

    @classmethod
    def generate(cls, algorithm: AlgorithmId | str = AlgorithmId.HS256, *, key_id: str | None = None) -> SymmetricKey:
        """Create a key with a random secret as long as the hash output."""
        alg = AlgorithmId.parse(algorithm)
        if not alg.family.symmetric:
            raise KeyFormatError(f"A symmetric secret cannot be bound to {alg}")
        return cls(secrets.token_bytes(alg.min_secret_length), alg, key_id=key_id)

    @property
    def can_sign(self) -> bool:
        return True

    @property
    def zeroized(self) -> bool:
        return not self._secret

    @property
    def _material(self) -> bytearray:
        if not self._secret:
            raise KeyFormatError("Key material has been zeroized")
        return self._secret

    def with_key_id(self, key_id: str) -> SymmetricKey:
        return SymmetricKey(self._material, self._algorithm, key_id=key_id, enforce_min_length=False)

    def zeroize(self) -> None:
        """Overwrite the secret with zeros and release it."""
        secret = getattr(self, "_secret", None)
        if secret:
            secret[:] = bytes(len(secret))
            del secret[:]

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.zeroize()

    def __del__(self) -> None:
        self.zeroize()


class _AsymmetricKey(KeyHandle):
    __slots__ = ("_key",)

    def __init__(self, key: Any, algorithm: AlgorithmId | str, *, key_id: str | None = None) -> None:
        super().__init__(algorithm, key_id)
        alg = self._algorithm
        if alg.family.symmetric:
            raise KeyFormatError(f"{alg} requires a symmetric secret, not {type(key).__name__}")
        if not algorithms.matches_shape(alg, key):
            raise KeyFormatError(f"{_describe(key)} cannot be used with {alg}")
        if alg.family in (Family.RSA_PKCS1, Family.RSA_PSS) and key.key_size < MIN_RSA_MODULUS_BITS:
            raise KeyFormatError(
                f"RSA modulus of {key.key_size} bits is below the minimum of {MIN_RSA_MODULUS_BITS}"
            )
        object.__setattr__(self, "_key", key)

    @property
    def _material(self) -> Any:
        return self._key

    @abstractmethod
    def _public_key(self) -> Any: ...

    def with_key_id(self, key_id: str) -> Self:
        return type(self)(self._key, self._algorithm, key_id=key_id)

    def create_key_id(self) -> Self:
        """Return a handle whose key id is derived from the public key.

        The id is the unpadded base64url SHA-256 of the DER SubjectPublicKeyInfo,
        so a private key and its public half get the same id.
        """
        spki = self._public_key().public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        digest = hashlib.sha256(spki).digest()
        return self.with_key_id(base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii"))


class PrivateKey(_AsymmetricKey):
    """Asymmetric private key for RS*/PS*/ES*/EdDSA signing."""

    __slots__ = ()

    def __init__(self, key: Any, algorithm: AlgorithmId | str, *, key_id: str | None = None) -> None:
        if not _is_private(key):
            raise KeyFormatError("Expected private key material")
        super().__init__(key, algorithm, key_id=key_id)

    @classmethod
    def from_pem(
        cls,
        data: str | bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PrivateKey:
        return cls(_load_pem(_as_bytes(data), password), algorithm, key_id=key_id)

    @classmethod
    def from_der(
        cls,
        data: bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PrivateKey:
        return cls(_load_der(bytes(data), password), algorithm, key_id=key_id)

    @classmethod
    def generate(
        cls,
        algorithm: AlgorithmId | str,
        *,
        key_id: str | None = None,
        rsa_key_size: int = MIN_RSA_MODULUS_BITS,
    ) -> PrivateKey:
        """Create a fresh private key of the shape ``algorithm`` expects."""
        alg = AlgorithmId.parse(algorithm)
        match alg.family:
            case Family.RSA_PKCS1 | Family.RSA_PSS:
                key: Any = rsa.generate_private_key(public_exponent=65537, key_size=rsa_key_size)
            case Family.ECDSA:
                key = ec.generate_private_key(_CURVES[alg.curve]())  # type: ignore[index]
            case Family.EDDSA:
                key = ed25519.Ed25519PrivateKey.generate()
            case _:
                raise KeyFormatError(f"{alg} uses symmetric secrets; use SymmetricKey.generate")
        return cls(key, alg, key_id=key_id)

    @property
    def can_sign(self) -> bool:
        return True

    def _public_key(self) -> Any:
        return self._key.public_key()

    def public_handle(self) -> PublicKey:
        """Return the verifying half, bound to the same algorithm and key id."""
        return PublicKey(self._key.public_key(), self._algorithm, key_id=self._key_id)

    def to_pem(self, password: bytes | None = None) -> bytes:
        """Export as PKCS8 PEM, encrypted when ``password`` is given."""
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(password)
            if password
            else serialization.NoEncryption()
        )
        return self._key.private_bytes(
            serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption
        )


class PublicKey(_AsymmetricKey):
    """Asymmetric public key; verification only."""

    __slots__ = ()

    def __init__(self, key: Any, algorithm: AlgorithmId | str, *, key_id: str | None = None) -> None:
        if _is_private(key):
            raise KeyFormatError("Expected public key material")
        super().__init__(key, algorithm, key_id=key_id)

    @classmethod
    def from_pem(
        cls,
        data: str | bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PublicKey:
        return cls(_load_pem(_as_bytes(data), password), algorithm, key_id=key_id)

    @classmethod
    def from_der(
        cls,
        data: bytes,
        algorithm: AlgorithmId | str,
        *,
        password: bytes | None = None,
        key_id: str | None = None,
    ) -> PublicKey:
        return cls(_load_der(bytes(data), password), algorithm, key_id=key_id)

    @property
    def can_sign(self) -> bool:
        return False

    def _public_key(self) -> Any:
        return self._key

    def to_pem(self) -> bytes:
        """Export as SubjectPublicKeyInfo PEM."""
        return self._key.public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
        )


# ============================================================================
# Loading helpers
# ============================================================================


def _is_private(key: Any) -> bool:
    return hasattr(key, "private_bytes")


def _describe(key: Any) -> str:
    curve = getattr(key, "curve", None)
    if curve is not None:
        return f"EC key on curve {curve.name}"
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return "RSA key"
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return "Ed25519 key"
    return f"{type(key).__name__} key"


def _wrap(key: Any, algorithm: AlgorithmId | str, key_id: str | None) -> PrivateKey | PublicKey:
    if _is_private(key):
        return PrivateKey(key, algorithm, key_id=key_id)
    return PublicKey(key, algorithm, key_id=key_id)


def _load_pem(data: bytes, password: bytes | None) -> Any:
    try:
        if b"PRIVATE KEY" in data:
            return serialization.load_pem_private_key(data, password=password)
        return serialization.load_pem_public_key(data)
    except _PARSE_ERRORS as e:
        raise KeyFormatError("Unable to parse PEM key material") from e


def _load_der(data: bytes, password: bytes | None) -> Any:
    try:
        return serialization.load_der_private_key(data, password=password)
    except _PARSE_ERRORS:
        logger.debug("DER material is not a private key, trying SubjectPublicKeyInfo")

    try:
        return serialization.load_der_public_key(data)
    except _PARSE_ERRORS as e:
        raise KeyFormatError("Unable to parse DER key material") from e
