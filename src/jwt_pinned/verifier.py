"""Token verification pipeline.

This module implements the verification state machine:

    Received -> Decoded -> AlgorithmChecked -> KeyIdChecked
             -> SignatureVerified -> ClaimsValidated -> Accepted

No state is skipped and none is reachable unless its predecessor succeeded.
The ordering is itself the security property: the header algorithm is
compared with the caller's trust list (defaulting to the key's own algorithm)
before any signature math runs, and claims are never inspected for a token
whose signature has not verified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from . import codec
from .errors import AlgorithmMismatch, InvalidSignature, KeyIdMismatch, TokenError
from .validation import ClaimValidator, SystemClock, VerificationOptions

if TYPE_CHECKING:
    from .claims import Claims, Header
    from .codec import DecodedToken
    from .keys import KeyHandle
    from .protocols import Clock

logger = logging.getLogger(__name__)


class VerificationState(Enum):
    RECEIVED = "received"
    DECODED = "decoded"
    ALGORITHM_CHECKED = "algorithm_checked"
    KEY_ID_CHECKED = "key_id_checked"
    SIGNATURE_VERIFIED = "signature_verified"
    CLAIMS_VALIDATED = "claims_validated"
    ACCEPTED = "accepted"


@dataclass(frozen=True, slots=True)
class VerifiedToken:
    """Header and claims of an accepted token."""

    header: Header
    claims: Claims


class JWTVerifier:
    """Verifies compact tokens with one algorithm-bound key.

    Thread Safety:
        Instances hold only immutable state (key handle, options, validator,
        clock) and can be shared between threads.

    Example:
        ```python
        verifier = JWTVerifier(
            public_key,
            VerificationOptions(allowed_issuers={"https://issuer.example"}),
        )

        try:
            claims = verifier.verify(raw_token)
        except TokenExpired:
            ...  # prompt re-authentication
        except TokenError:
            ...  # reject request
        ```

    Attributes:
        _key: Verification key; its algorithm is the default trust list.
        _options: Default options, replaceable per call.
        _validator: Claim policy engine.
        _clock: Time source, sampled once per call.
    """

    def __init__(
        self,
        key: KeyHandle,
        options: VerificationOptions | None = None,
        *,
        validator: ClaimValidator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._key = key
        self._options = options or VerificationOptions()
        self._validator = validator or ClaimValidator()
        self._clock: Clock = clock or SystemClock()

    @property
    def key(self) -> KeyHandle:
        return self._key

    def verify(self, token: str | bytes, options: VerificationOptions | None = None) -> Claims:
        """Verify a token and return its claims.

        Args:
            token: Raw token.
            options: Per-call options replacing the verifier defaults.

        Raises:
            MalformedToken: Token cannot be parsed.
            UnsupportedAlgorithm: Header names an unknown algorithm.
            AlgorithmMismatch: Header algorithm is not trusted for this key.
            KeyIdMismatch: ``required_key_id`` set and ``kid`` absent or different.
            InvalidSignature: Signature does not verify.
            ClaimError: A claim violates policy (see ClaimValidator).
        """
        return self.verify_complete(token, options).claims

    def verify_complete(self, token: str | bytes, options: VerificationOptions | None = None) -> VerifiedToken:
        """Like ``verify`` but also returns the decoded header."""
        opts = options or self._options
        state = VerificationState.RECEIVED
        kid: str | None = None

        try:
            decoded = self._decode(token, opts)
            header = decoded.header
            kid = header.key_id
            state = self._advance(state, VerificationState.DECODED)

            self._check_algorithm(header, opts)
            state = self._advance(state, VerificationState.ALGORITHM_CHECKED)

            self._check_key_id(header, opts)
            state = self._advance(state, VerificationState.KEY_ID_CHECKED)

            if not self._key.verify(decoded.signed_region, decoded.signature):
                raise InvalidSignature("Signature verification failed")
            state = self._advance(state, VerificationState.SIGNATURE_VERIFIED)

            claims = self._parse_claims(decoded.claims_bytes)
            now = opts.artificial_clock if opts.artificial_clock is not None else self._clock.now()
            self._validator.validate(claims, opts, now)
            state = self._advance(state, VerificationState.CLAIMS_VALIDATED)

        except TokenError as e:
            logger.info("Token rejected after state %s: %s (kid=%s)", state.value, e.kind, kid)
            raise

        self._advance(state, VerificationState.ACCEPTED)
        return VerifiedToken(header=header, claims=claims)

    # --- Steps

    def _decode(self, token: str | bytes, options: VerificationOptions) -> DecodedToken:
        return codec.decode(token, max_header_length=options.max_header_length)

    def _parse_claims(self, claims_bytes: bytes) -> Claims:
        return codec.decode_claims(claims_bytes)

    def _check_algorithm(self, header: Header, options: VerificationOptions) -> None:
        key_alg = self._key.algorithm
        allowed = options.allowed_algorithms
        if allowed is None:
            allowed = frozenset({key_alg})

        if header.algorithm not in allowed:
            raise AlgorithmMismatch(
                f"Algorithm {header.algorithm} is not allowed",
                expected=tuple(sorted(str(a) for a in allowed)),
                observed=str(header.algorithm),
            )
        # Allowed by policy, but this key is bound to exactly one algorithm.
        if header.algorithm is not key_alg:
            raise AlgorithmMismatch(
                f"Algorithm {header.algorithm} does not match the key's {key_alg}",
                expected=(str(key_alg),),
                observed=str(header.algorithm),
            )

    def _check_key_id(self, header: Header, options: VerificationOptions) -> None:
        required = options.required_key_id
        if required is None:
            return
        if header.key_id is None:
            raise KeyIdMismatch("Token header is missing the required 'kid'")
        if header.key_id != required:
            raise KeyIdMismatch("Token 'kid' does not match the required key identifier")

    @staticmethod
    def _advance(current: VerificationState, target: VerificationState) -> VerificationState:
        logger.debug("Token verification %s -> %s", current.value, target.value)
        return target


def verify_token(
    token: str | bytes,
    key: KeyHandle,
    options: VerificationOptions | None = None,
) -> Claims:
    """Verify ``token`` with ``key``; shorthand for ``JWTVerifier(key).verify``."""
    return JWTVerifier(key, options).verify(token)
