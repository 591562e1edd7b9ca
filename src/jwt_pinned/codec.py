"""Compact JWS codec.

Token text form::

    base64url(header_json) "." base64url(claims_json) "." base64url(signature)

without padding. The signed region is the first two segments exactly as
transmitted; ``decode`` returns that byte span instead of re-serializing the
parsed header and claims, so what gets verified is what was signed.

Claims bytes are returned undecoded: they are only parsed once the signature
has verified (see ``decode_claims``).
"""

from __future__ import annotations

import binascii
import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from jwt.utils import base64url_decode, base64url_encode

from .claims import Claims, Header
from .errors import HeaderTooLarge, MalformedToken

if TYPE_CHECKING:
    from .protocols import JSONObject, SignFunc

MAX_HEADER_LENGTH: Final[int] = 4096
"""Default maximum length, in characters, of the encoded header segment."""

SEPARATOR: Final[str] = "."

_B64URL_SEGMENT: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_-]*")


@dataclass(frozen=True, slots=True)
class DecodedToken:
    """A token split into its parts, before any verification.

    Attributes:
        header: Parsed header (algorithm already validated as a known name).
        claims_bytes: Raw claims payload, not yet parsed.
        signed_region: Exact bytes covered by the signature.
        signature: Raw signature bytes.
    """

    header: Header
    claims_bytes: bytes
    signed_region: bytes
    signature: bytes


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    """Unverified header information, useful to pick a key before verifying.

    Nothing here is authenticated. Use it to look a key up by ``key_id``, never
    to decide which algorithm to trust.
    """

    header: Header

    @property
    def algorithm(self) -> str:
        return str(self.header.algorithm)

    @property
    def key_id(self) -> str | None:
        return self.header.key_id

    @property
    def content_type(self) -> str | None:
        return self.header.content_type

    @property
    def token_type(self) -> str | None:
        return self.header.token_type

    @property
    def critical(self) -> tuple[str, ...] | None:
        return self.header.critical

    @property
    def key_set_url(self) -> str | None:
        return self._extra_str("jku")

    @property
    def public_key(self) -> Any:
        return self.header.extra.get("jwk")

    @property
    def certificate_url(self) -> str | None:
        return self._extra_str("x5u")

    @property
    def certificate_chain(self) -> Any:
        return self.header.extra.get("x5c")

    @property
    def certificate_sha1_thumbprint(self) -> str | None:
        return self._extra_str("x5t")

    @property
    def certificate_sha256_thumbprint(self) -> str | None:
        return self._extra_str("x5t#S256")

    def _extra_str(self, name: str) -> str | None:
        value = self.header.extra.get(name)
        return value if isinstance(value, str) else None


# ============================================================================
# Primitives
# ============================================================================


def b64url_encode(data: bytes) -> str:
    return base64url_encode(data).decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode one unpadded base64url segment.

    Raises:
        MalformedToken: On padding, characters outside the URL-safe alphabet,
            an impossible length, or non-zero trailing bits (each byte
            string has exactly one accepted encoding).
    """
    if not _B64URL_SEGMENT.fullmatch(segment) or len(segment) % 4 == 1:
        raise MalformedToken("Invalid base64url segment")
    try:
        data = base64url_decode(segment)
    except (binascii.Error, ValueError) as e:
        raise MalformedToken("Invalid base64url segment") from e
    if b64url_encode(data) != segment:
        raise MalformedToken("Non-canonical base64url segment")
    return data


def json_dumps(obj: JSONObject) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")


def _reject_constant(name: str) -> Any:
    raise MalformedToken(f"Invalid JSON number: {name}")


def _unique_object(pairs: list[tuple[str, Any]]) -> JSONObject:
    obj: JSONObject = {}
    for key, value in pairs:
        if key in obj:
            raise MalformedToken(f"Duplicate JSON member: {key!r}")
        obj[key] = value
    return obj


def json_loads_object(data: bytes, what: str) -> JSONObject:
    """Parse ``data`` as a UTF-8 JSON object.

    Raises:
        MalformedToken: If the bytes are not UTF-8 JSON, contain duplicate
            members or NaN/Infinity, or are not an object.
    """
    try:
        obj = json.loads(
            data.decode("utf-8"),
            object_pairs_hook=_unique_object,
            parse_constant=_reject_constant,
        )
    except ValueError as e:
        # JSONDecodeError, UnicodeDecodeError and the int digit limit.
        raise MalformedToken(f"Invalid {what}: not UTF-8 JSON") from e
    if not isinstance(obj, dict):
        raise MalformedToken(f"Invalid {what}: must be a JSON object")
    return obj


def _as_text(token: str | bytes) -> str:
    if isinstance(token, (bytes, bytearray)):
        try:
            return bytes(token).decode("ascii")
        except UnicodeDecodeError as e:
            raise MalformedToken("Token must be ASCII") from e
    if not isinstance(token, str):
        raise MalformedToken(f"Token must be str or bytes, not {type(token).__name__}")
    if not token.isascii():
        raise MalformedToken("Token must be ASCII")
    return token


def _split(text: str, max_header_length: int) -> tuple[str, str, str]:
    parts = text.split(SEPARATOR)
    if len(parts) != 3:
        raise MalformedToken(f"Token must have 3 segments, found {len(parts)}")
    if len(parts[0]) > max_header_length:
        raise HeaderTooLarge(f"Encoded header exceeds {max_header_length} characters")
    return parts[0], parts[1], parts[2]


def _parse_header(segment: str) -> Header:
    return Header.from_dict(json_loads_object(b64url_decode(segment), "header"))


# ============================================================================
# Public API
# ============================================================================


def encode(header: Header, claims: Claims, sign: SignFunc) -> str:
    """Serialize ``header`` and ``claims``, sign the region, frame the token."""
    signing_input = SEPARATOR.join(
        (b64url_encode(json_dumps(header.to_dict())), b64url_encode(json_dumps(claims.to_dict())))
    )
    signature = sign(signing_input.encode("ascii"))
    return f"{signing_input}{SEPARATOR}{b64url_encode(signature)}"


def decode(token: str | bytes, *, max_header_length: int = MAX_HEADER_LENGTH) -> DecodedToken:
    """Split and parse a compact token without verifying anything.

    Raises:
        MalformedToken: Wrong segment count, bad base64url, bad header JSON,
            missing ``alg``, or any ``crit`` header (no extensions are
            understood, so critical ones must be refused).
        HeaderTooLarge: Encoded header longer than ``max_header_length``.
        UnsupportedAlgorithm: ``alg`` is not a supported algorithm name.
    """
    text = _as_text(token)
    header_seg, claims_seg, signature_seg = _split(text, max_header_length)
    header = _parse_header(header_seg)
    if header.critical is not None:
        raise MalformedToken("Critical header extensions are not supported")

    claims_bytes = b64url_decode(claims_seg)
    signature = b64url_decode(signature_seg)
    signed_region = text[: len(header_seg) + 1 + len(claims_seg)].encode("ascii")
    return DecodedToken(header, claims_bytes, signed_region, signature)


def decode_claims(claims_bytes: bytes) -> Claims:
    """Parse verified claims bytes into Claims.

    Raises:
        MalformedToken: Non-object JSON or wrongly typed reserved claims.
    """
    return Claims.from_dict(json_loads_object(claims_bytes, "claims"))


def decode_metadata(token: str | bytes, *, max_header_length: int = MAX_HEADER_LENGTH) -> TokenMetadata:
    """Return the unverified header of ``token``.

    Raises:
        MalformedToken: If the token or its header cannot be parsed.
    """
    header_seg, _, _ = _split(_as_text(token), max_header_length)
    return TokenMetadata(_parse_header(header_seg))
