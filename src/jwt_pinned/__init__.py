"""
Signed token issuing and verification with algorithm-pinned keys.

High-level flow
---------------
Signing:
1. Build `Claims` (reserved fields + custom mapping).
2. `JWTSigner(key).sign(claims)` takes `alg` from the key, serializes header
   and claims, signs the region and frames the compact token.

Verification (`JWTVerifier(key, options).verify(token)`):
1. Codec splits the token (signed region kept byte-for-byte).
2. Header `alg` is compared with `allowed_algorithms`, which defaults to the
   key's own algorithm. Mismatch fails before any signature math.
3. The key verifies the signature.
4. `ClaimValidator` checks time bounds, issuer, audience, subject, nonce and
   required claims against one sampled "now".
5. Typed `Claims` are returned, or exactly one `TokenError` is raised.

Security notes
--------------
- A key is bound to one algorithm at construction; token headers never choose it.
- `none` is not an algorithm.
- Claims of a token whose signature did not verify are never parsed.
- Symmetric secrets are zeroized when the key is dropped.

Example usage
-------------

.. code-block:: python

    from jwt_pinned import (
        AlgorithmId,
        Claims,
        JWTSigner,
        JWTVerifier,
        SymmetricKey,
        VerificationOptions,
    )

    key = SymmetricKey.generate(AlgorithmId.HS256, key_id="k1")

    token = JWTSigner(key).sign(
        Claims.create(valid_for=3600).with_subject("alice").with_audience("api")
    )

    verifier = JWTVerifier(
        key,
        VerificationOptions(allowed_audiences={"api"}, required_claims={"exp"}),
    )
    claims = verifier.verify(token)
    assert claims.subject == "alice"

The binary variant lives in `jwt_pinned.cwt` (extra ``cwt``).
"""

# Algorithms
from .algorithms import AlgorithmId, Family

# Claims model
from .claims import RESERVED_CLAIMS, Claims, Header

# Codec
from .codec import DecodedToken, TokenMetadata, decode_metadata

# Configuration
from .config import options_from_env

# Errors
from .errors import (
    AlgorithmMismatch,
    ClaimError,
    HeaderTooLarge,
    InvalidAudience,
    InvalidIssuer,
    InvalidNonce,
    InvalidSignature,
    InvalidSubject,
    KeyAlgorithmMismatch,
    KeyFormatError,
    KeyIdMismatch,
    MalformedToken,
    MissingRequiredClaim,
    OldTokenReused,
    TokenError,
    TokenExpired,
    TokenNotYetValid,
    UnsupportedAlgorithm,
)

# Keys
from .keys import InsecureKeyLengthWarning, KeyHandle, PrivateKey, PublicKey, SymmetricKey

# Protocols
from .protocols import Clock, SignaturePrimitive, TokenSigner, TokenVerifier

# Signing
from .signer import JWTSigner, sign_token

# Validation
from .validation import AudienceMatch, ClaimValidator, SystemClock, VerificationOptions

# Verification
from .verifier import JWTVerifier, VerificationState, VerifiedToken, verify_token

__all__ = [
    # Algorithms
    "AlgorithmId",
    "Family",
    # Claims model
    "RESERVED_CLAIMS",
    "Claims",
    "Header",
    # Codec
    "DecodedToken",
    "TokenMetadata",
    "decode_metadata",
    # Configuration
    "options_from_env",
    # Errors
    "AlgorithmMismatch",
    "ClaimError",
    "HeaderTooLarge",
    "InvalidAudience",
    "InvalidIssuer",
    "InvalidNonce",
    "InvalidSignature",
    "InvalidSubject",
    "KeyAlgorithmMismatch",
    "KeyFormatError",
    "KeyIdMismatch",
    "MalformedToken",
    "MissingRequiredClaim",
    "OldTokenReused",
    "TokenError",
    "TokenExpired",
    "TokenNotYetValid",
    "UnsupportedAlgorithm",
    # Keys
    "InsecureKeyLengthWarning",
    "KeyHandle",
    "PrivateKey",
    "PublicKey",
    "SymmetricKey",
    # Protocols
    "Clock",
    "SignaturePrimitive",
    "TokenSigner",
    "TokenVerifier",
    # Signing
    "JWTSigner",
    "sign_token",
    # Validation
    "AudienceMatch",
    "ClaimValidator",
    "SystemClock",
    "VerificationOptions",
    # Verification
    "JWTVerifier",
    "VerificationState",
    "VerifiedToken",
    "verify_token",
]
