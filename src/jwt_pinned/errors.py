"""Token issuing and verification errors.

This module defines the exception hierarchy for every failure the library can
report. All errors inherit from TokenError to allow catch-all error handling,
and each concrete class carries a stable ``kind`` string so callers can log or
count failures without matching on message text.

Security Note:
    Messages and attributes never contain key material, signatures, or raw
    token segments. Claim errors expose expected/observed values only for
    public claims (issuer, audience, subject, time bounds); nonce mismatches
    disclose nothing.
"""

from __future__ import annotations

from typing import Any, ClassVar


class TokenError(Exception):
    """Base exception for all token failures.

    Application code can catch this single exception type to handle any
    signing or verification failure generically.

    Attributes:
        kind: Stable identifier of the failure category.
    """

    kind: ClassVar[str] = "TokenError"


class MalformedToken(TokenError):  # noqa: N818
    """Raised when a token cannot be parsed.

    This occurs when:
    - The token does not have exactly three segments (or is not a COSE object)
    - A segment is not valid unpadded base64url
    - The header or claims are not a JSON object
    - The mandatory ``alg`` header is absent or not a string
    - A reserved claim has the wrong type (e.g. a string ``exp``)
    """

    kind = "MalformedToken"


class HeaderTooLarge(MalformedToken):  # noqa: N818
    """Raised when the encoded header exceeds the configured maximum length."""

    kind = "HeaderTooLarge"


class UnsupportedAlgorithm(TokenError):  # noqa: N818
    """Raised when an algorithm name is not one of the fixed enumeration.

    ``none`` is never supported.
    """

    kind = "UnsupportedAlgorithm"


class AlgorithmMismatch(TokenError):  # noqa: N818
    """Raised when the header algorithm is not trusted by the verifier.

    This check runs strictly before any signature math, so an attacker who
    controls the header can never select a different verification path.

    Attributes:
        expected: Algorithm names the verifier would accept.
        observed: Algorithm name declared by the token header.
    """

    kind = "AlgorithmMismatch"

    def __init__(self, message: str, *, expected: tuple[str, ...] = (), observed: str | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.observed = observed


class KeyIdMismatch(TokenError):  # noqa: N818
    """Raised when a key identifier is required but absent or different."""

    kind = "KeyIdMismatch"


class KeyFormatError(TokenError):
    """Raised when key material cannot be used for the requested algorithm.

    This occurs when:
    - PEM/DER bytes cannot be parsed
    - The parsed key is of another family or curve than the algorithm needs
      (e.g. an RSA key presented for ES256)
    - An HMAC secret is shorter than the hash output
    - A symmetric key has been zeroized
    """

    kind = "KeyFormatError"


class KeyAlgorithmMismatch(TokenError):
    """Raised when a key is handed to a primitive of another algorithm.

    This is a programming error, not a decision about an untrusted token.
    """

    kind = "KeyAlgorithmMismatch"


class InvalidSignature(TokenError):  # noqa: N818
    """Raised when the signature or MAC does not verify under the key."""

    kind = "InvalidSignature"


class ClaimError(TokenError):
    """Base class for claim policy failures.

    Only raised for tokens whose signature has already verified.

    Attributes:
        claim: Name of the claim that failed.
        expected: Safe-to-disclose description of what policy required.
        observed: Safe-to-disclose value found in the token.
    """

    kind = "ClaimError"

    def __init__(self, message: str, *, claim: str, expected: Any = None, observed: Any = None) -> None:
        super().__init__(message)
        self.claim = claim
        self.expected = expected
        self.observed = observed


class TokenExpired(ClaimError):  # noqa: N818
    """Raised when ``exp`` has passed or the token outlived its allowed lifetime."""

    kind = "TokenExpired"


class OldTokenReused(TokenExpired):  # noqa: N818
    """Raised when ``iat`` predates the verifier's ``reject_before`` instant."""

    kind = "OldTokenReused"


class TokenNotYetValid(ClaimError):  # noqa: N818
    """Raised when ``nbf`` (or ``iat``) lies in the future beyond leeway."""

    kind = "TokenNotYetValid"


class InvalidIssuer(ClaimError):  # noqa: N818
    kind = "InvalidIssuer"


class InvalidAudience(ClaimError):  # noqa: N818
    kind = "InvalidAudience"


class InvalidSubject(ClaimError):  # noqa: N818
    kind = "InvalidSubject"


class MissingRequiredClaim(ClaimError):  # noqa: N818
    """Raised when a claim named by policy is absent from the token."""

    kind = "MissingRequiredClaim"

    def __init__(self, claim: str) -> None:
        super().__init__(f'Token is missing the "{claim}" claim', claim=claim)


class InvalidNonce(ClaimError):  # noqa: N818
    """Raised when the token nonce differs from the one the caller expects.

    Neither the expected nor the observed nonce is attached to the error.
    """

    kind = "InvalidNonce"

    def __init__(self, message: str = "Nonce mismatch") -> None:
        super().__init__(message, claim="nonce")
