"""CBOR Web Token (CWT) variant.

Install with the ``cwt`` extra (``pip install jwt-pinned[cwt]``).

Tokens are COSE single-signer objects encoded with cbor2:

- ``COSE_Mac0`` (tag 17) for HMAC algorithms, ``COSE_Sign1`` (tag 18) for
  signature algorithms, optionally wrapped in the CWT tag 61 on input
- structure ``[protected: bstr, unprotected: map, payload: bstr, signature: bstr]``
- protected header ``{1: alg, 4: kid}`` using COSE algorithm numbers
- payload claims keyed by CWT integer labels (iss=1 ... cti=7); custom claims
  and ``nonce`` keep their text names

The signed region is the ``Sig_structure``/``MAC_structure``
``[context, protected, external_aad, payload]`` built from the bytes exactly
as received. Verification goes through the same state machine and claim
policy as compact JWTs.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any, Final

import cbor2

from .algorithms import AlgorithmId
from .claims import Claims, Header
from .codec import MAX_HEADER_LENGTH, DecodedToken
from .errors import HeaderTooLarge, MalformedToken
from .signer import JWTSigner
from .verifier import JWTVerifier

if TYPE_CHECKING:
    from .protocols import SignFunc
    from .validation import VerificationOptions

COSE_MAC0_TAG: Final[int] = 17
COSE_SIGN1_TAG: Final[int] = 18
CWT_TAG: Final[int] = 61

HEADER_ALG: Final[int] = 1
HEADER_CRIT: Final[int] = 2
HEADER_KID: Final[int] = 4

CLAIM_LABELS: Final[dict[str, int]] = {
    "iss": 1,
    "sub": 2,
    "aud": 3,
    "exp": 4,
    "nbf": 5,
    "iat": 6,
    "jti": 7,
}
_LABEL_NAMES: Final[dict[int, str]] = {v: k for k, v in CLAIM_LABELS.items()}

_EXTERNAL_AAD: Final[bytes] = b""


def _tag_for(algorithm: AlgorithmId) -> int:
    return COSE_MAC0_TAG if algorithm.family.symmetric else COSE_SIGN1_TAG


def _signed_region(tag: int, protected: bytes, payload: bytes) -> bytes:
    context = "MAC0" if tag == COSE_MAC0_TAG else "Signature1"
    return cbor2.dumps([context, protected, _EXTERNAL_AAD, payload])


def _loads(data: bytes, what: str) -> Any:
    """Decode exactly one CBOR data item; trailing bytes are malformed."""
    fp = io.BytesIO(data)
    try:
        obj = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as e:
        raise MalformedToken(f"Invalid {what}: not CBOR") from e
    if fp.read(1):
        raise MalformedToken(f"Invalid {what}: trailing bytes after CBOR item")
    return obj


def encode(header: Header, claims: Claims, sign: SignFunc) -> bytes:
    """Serialize, sign and frame a COSE single-signer object."""
    protected_map: dict[int, Any] = {HEADER_ALG: header.algorithm.cose_id}
    if header.key_id is not None:
        protected_map[HEADER_KID] = header.key_id.encode("utf-8")
    protected = cbor2.dumps(protected_map, canonical=True)

    payload_map = {CLAIM_LABELS.get(name, name): value for name, value in claims.to_dict().items()}
    payload = cbor2.dumps(payload_map, canonical=True)

    tag = _tag_for(header.algorithm)
    signature = sign(_signed_region(tag, protected, payload))
    return cbor2.dumps(cbor2.CBORTag(tag, [protected, {}, payload, signature]))


def decode(data: bytes, *, max_header_length: int = MAX_HEADER_LENGTH) -> DecodedToken:
    """Split a COSE_Mac0/COSE_Sign1 object without verifying it.

    Raises:
        MalformedToken: Not a tagged 4-element COSE structure, bad protected
            header, missing ``alg``, critical headers, or a tag that does not
            fit the algorithm.
        HeaderTooLarge: Protected header longer than ``max_header_length`` bytes.
        UnsupportedAlgorithm: Unknown COSE algorithm number.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise MalformedToken(f"CWT must be bytes, not {type(data).__name__}")

    obj = _loads(bytes(data), "token")
    if isinstance(obj, cbor2.CBORTag) and obj.tag == CWT_TAG:
        obj = obj.value
    if not isinstance(obj, cbor2.CBORTag) or obj.tag not in (COSE_MAC0_TAG, COSE_SIGN1_TAG):
        raise MalformedToken("Not a COSE_Mac0 or COSE_Sign1 object")

    parts = obj.value
    if not isinstance(parts, list) or len(parts) != 4:
        raise MalformedToken("COSE object must have 4 elements")
    protected, unprotected, payload, signature = parts
    if not all(isinstance(p, bytes) for p in (protected, payload, signature)):
        raise MalformedToken("COSE protected header, payload and signature must be byte strings")
    if not isinstance(unprotected, dict):
        raise MalformedToken("COSE unprotected header must be a map")
    if len(protected) > max_header_length:
        raise HeaderTooLarge(f"Protected header exceeds {max_header_length} bytes")

    protected_map = _loads(protected, "protected header") if protected else {}
    if not isinstance(protected_map, dict):
        raise MalformedToken("COSE protected header must be a map")
    if HEADER_ALG not in protected_map:
        raise MalformedToken("Protected header is missing the mandatory 'alg' field")
    if HEADER_CRIT in protected_map:
        raise MalformedToken("Critical header extensions are not supported")

    algorithm = AlgorithmId.from_cose(protected_map[HEADER_ALG])
    if obj.tag != _tag_for(algorithm):
        raise MalformedToken(f"COSE tag {obj.tag} does not fit algorithm {algorithm}")

    kid = protected_map.get(HEADER_KID)
    if isinstance(kid, bytes):
        try:
            kid = kid.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedToken("Key identifier is not UTF-8") from e
    elif kid is not None and not isinstance(kid, str):
        raise MalformedToken("Key identifier must be a byte or text string")

    header = Header(algorithm=algorithm, key_id=kid, token_type=None)
    return DecodedToken(header, payload, _signed_region(obj.tag, protected, payload), signature)


def decode_claims(payload: bytes) -> Claims:
    """Parse a verified CWT payload into Claims.

    Raises:
        MalformedToken: Payload is not a CBOR map, uses unknown integer labels,
            or reserved claims have the wrong type.
    """
    obj = _loads(payload, "claims")
    if not isinstance(obj, dict):
        raise MalformedToken("Invalid claims: must be a CBOR map")

    named: dict[str, Any] = {}
    for label, value in obj.items():
        if isinstance(label, int) and not isinstance(label, bool):
            if label not in _LABEL_NAMES:
                raise MalformedToken(f"Unknown claim label: {label}")
            name = _LABEL_NAMES[label]
        elif isinstance(label, str):
            name = label
        else:
            raise MalformedToken("Claim keys must be integers or text strings")
        if name in named:
            raise MalformedToken(f"Duplicate claim: {name!r}")
        if name == "jti" and isinstance(value, bytes):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedToken("Claim 'cti' is not UTF-8") from e
        named[name] = value
    return Claims.from_dict(named)


class CWTSigner(JWTSigner):
    """Issues CWTs; same key binding rules as JWTSigner."""

    def sign(  # type: ignore[override]
        self,
        claims: Claims,
        *,
        key_id: str | None = None,
    ) -> bytes:
        header = self.header(key_id=key_id, token_type=None)
        return encode(header, claims, self._key.sign)


class CWTVerifier(JWTVerifier):
    """Verifies CWTs through the same state machine as JWTVerifier."""

    def _decode(self, token: str | bytes, options: VerificationOptions) -> DecodedToken:
        if isinstance(token, str):
            raise MalformedToken("CWT must be bytes, not str")
        return decode(token, max_header_length=options.max_header_length)

    def _parse_claims(self, claims_bytes: bytes) -> Claims:
        return decode_claims(claims_bytes)
