"""Protocol definitions for the token engine.

This module defines structural interfaces using Protocol (PEP 544) for:
- Signature primitives (the external crypto collaborators)
- Time sources
- Token signing and verification

Using protocols keeps the engine independent of the concrete primitive
library and makes fakes trivial in tests: any class that implements the
required methods satisfies the protocol.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import (
        PrivateKeyTypes,
        PublicKeyTypes,
    )

    from .claims import Claims

# ============================================================================
# Type Aliases
# ============================================================================

KeyMaterial: TypeAlias = "bytearray | PrivateKeyTypes | PublicKeyTypes"
"""Raw secret bytes or a `cryptography` key object, as owned by a KeyHandle."""

SignFunc: TypeAlias = Callable[[bytes], bytes]
"""Callable producing a signature over the signed region."""

JSONObject: TypeAlias = dict[str, Any]


# ============================================================================
# Core Protocols
# ============================================================================


class SignaturePrimitive(Protocol):
    """Protocol for the low-level signature primitives.

    PyJWT's ``jwt.algorithms`` classes satisfy this protocol. They are treated
    as trusted black boxes: the registry only chooses which one to call and
    confirms the key shape beforehand.
    """

    def sign(self, msg: bytes, key: Any) -> bytes:
        """Sign ``msg`` with ``key`` and return the raw signature bytes."""
        ...

    def verify(self, msg: bytes, key: Any, sig: bytes) -> bool:
        """Return True when ``sig`` is a valid signature of ``msg``."""
        ...


class Clock(Protocol):
    """Protocol for wall-clock sources.

    Verification samples the clock exactly once per call.
    """

    def now(self) -> float:
        """Return the current time as seconds since the epoch."""
        ...


class TokenSigner(Protocol):
    def sign(self, claims: Claims) -> str | bytes: ...


class TokenVerifier(Protocol):
    """Protocol for token verification implementations.

    Implementers must:
    1. Validate the token's structure, algorithm and signature
    2. Validate the decoded claims against policy
    3. Return the typed claims
    """

    def verify(self, token: str | bytes) -> Claims:
        """Verify a token and return its decoded claims.

        Raises:
            MalformedToken: Token cannot be parsed.
            AlgorithmMismatch: Header names an algorithm that is not trusted.
            InvalidSignature: Signature does not verify.
            ClaimError: A claim violates the verification policy.
        """
        ...
