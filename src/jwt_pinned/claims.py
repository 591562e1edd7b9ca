"""Header and claims data model.

Claims keep the reserved fields the validation engine inspects as typed
attributes and everything else in a sibling ``custom`` mapping. The two are
merged when serializing and split when deserializing, so custom payloads stay
open-ended without weakening the types of ``exp``/``aud``/``iss`` and friends.

Both Header and Claims are immutable; builders return new instances.
"""

from __future__ import annotations

import datetime
import math
import secrets
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Final, Self, TypeAlias

from .algorithms import AlgorithmId
from .errors import MalformedToken

if TYPE_CHECKING:
    from .protocols import JSONObject

Instant: TypeAlias = float | int | datetime.datetime
"""Absolute time: seconds since the epoch or an (assumed UTC if naive) datetime."""

Duration: TypeAlias = float | int | datetime.timedelta

Audience: TypeAlias = str | frozenset[str]

RESERVED_CLAIMS: Final[frozenset[str]] = frozenset(
    {"iss", "sub", "aud", "exp", "nbf", "iat", "jti", "nonce"}
)
"""JSON names of the claims modelled as typed attributes."""

_CLAIM_ATTRS: Final[dict[str, str]] = {
    "iss": "issuer",
    "sub": "subject",
    "aud": "audience",
    "exp": "expires_at",
    "nbf": "not_before",
    "iat": "issued_at",
    "jti": "jwt_id",
    "nonce": "nonce",
}

_TIME_CLAIMS: Final[tuple[str, ...]] = ("exp", "nbf", "iat")
_STRING_CLAIMS: Final[tuple[str, ...]] = ("iss", "sub", "jti", "nonce")

_HEADER_FIELDS: Final[frozenset[str]] = frozenset({"alg", "kid", "cty", "typ", "crit"})

NONCE_BYTES: Final[int] = 24


def _finite(value: int | float, message: str) -> float:
    try:
        seconds = float(value)
    except OverflowError as e:
        raise ValueError(message) from e
    if not math.isfinite(seconds):
        raise ValueError(message)
    return seconds


def to_timestamp(value: Instant) -> float:
    """Convert an Instant to float seconds since the epoch."""
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.UTC)
        return value.timestamp()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected a number of seconds or a datetime, got {type(value).__name__}")
    return _finite(value, "Time values must be finite")


def to_seconds(value: Duration) -> float:
    """Convert a Duration to float seconds."""
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected a number of seconds or a timedelta, got {type(value).__name__}")
    seconds = _finite(value, "Durations must be finite and non-negative")
    if seconds < 0:
        raise ValueError("Durations must be finite and non-negative")
    return seconds


def _encode_time(value: float) -> int | float:
    return int(value) if value.is_integer() else value


def _normalize_audience(value: Any) -> Audience | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, Iterable):
        items = list(value)
        if all(isinstance(item, str) for item in items):
            return frozenset(items)
    raise TypeError("audience must be a string or an iterable of strings")


# ============================================================================
# Header
# ============================================================================


@dataclass(frozen=True, slots=True)
class Header:
    """Cryptographic context of a token.

    Built by the signer from the key's own algorithm and never edited during
    verification.

    Attributes:
        algorithm: ``alg``; always the signing key's bound algorithm.
        key_id: ``kid``.
        content_type: ``cty``.
        token_type: ``typ``; conventionally ``"JWT"``.
        critical: ``crit``; present only on decoded headers.
        extra: Any other header fields found while decoding (``jku``, ``jwk``,
            ``x5u``, ``x5c``, ``x5t``, ``x5t#S256``, ...). Informational only.
    """

    algorithm: AlgorithmId
    key_id: str | None = None
    content_type: str | None = None
    token_type: str | None = "JWT"
    critical: tuple[str, ...] | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> JSONObject:
        out: JSONObject = {"alg": str(self.algorithm)}
        if self.token_type is not None:
            out["typ"] = self.token_type
        if self.key_id is not None:
            out["kid"] = self.key_id
        if self.content_type is not None:
            out["cty"] = self.content_type
        if self.critical is not None:
            out["crit"] = list(self.critical)
        for name, value in self.extra.items():
            out.setdefault(name, value)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Header:
        """Build a header from decoded JSON.

        Raises:
            MalformedToken: If ``alg`` is missing or a known field has the wrong type.
            UnsupportedAlgorithm: If ``alg`` is not a supported algorithm name.
        """
        if "alg" not in data or not isinstance(data["alg"], str):
            raise MalformedToken("Header is missing the mandatory 'alg' field")
        algorithm = AlgorithmId.parse(data["alg"])

        for name in ("kid", "cty", "typ"):
            if name in data and not isinstance(data[name], str):
                raise MalformedToken(f"Header field '{name}' must be a string")

        critical = data.get("crit")
        if critical is not None:
            if not isinstance(critical, list) or not all(isinstance(c, str) for c in critical):
                raise MalformedToken("Header field 'crit' must be a list of strings")
            critical = tuple(critical)

        return cls(
            algorithm=algorithm,
            key_id=data.get("kid"),
            content_type=data.get("cty"),
            token_type=data.get("typ"),
            critical=critical,
            extra={k: v for k, v in data.items() if k not in _HEADER_FIELDS},
        )


# ============================================================================
# Claims
# ============================================================================


@dataclass(frozen=True, slots=True)
class Claims:
    """Reserved claims plus an open mapping of custom claims.

    Time attributes are float seconds since the epoch; datetimes are accepted
    on construction and converted. ``audience`` keeps its shape: a single
    string stays a string, any iterable becomes a frozenset.

    Example:
        ```python
        claims = (
            Claims.create(valid_for=datetime.timedelta(hours=1))
            .with_subject("alice")
            .with_audience("api://orders")
            .with_custom(scope="read")
        )
        ```

    Raises:
        TypeError: On construction with wrongly typed reserved values.
        ValueError: If ``custom`` uses a reserved claim name.
    """

    issuer: str | None = None
    subject: str | None = None
    audience: Audience | None = None
    expires_at: float | None = None
    not_before: float | None = None
    issued_at: float | None = None
    jwt_id: str | None = None
    nonce: str | None = None
    custom: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for attr in ("issuer", "subject", "jwt_id", "nonce"):
            value = getattr(self, attr)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"{attr} must be a string")
        for attr in ("expires_at", "not_before", "issued_at"):
            value = getattr(self, attr)
            if value is not None:
                object.__setattr__(self, attr, to_timestamp(value))
        object.__setattr__(self, "audience", _normalize_audience(self.audience))

        shadowed = RESERVED_CLAIMS.intersection(self.custom)
        if shadowed:
            raise ValueError(f"Custom claims may not use reserved names: {sorted(shadowed)}")
        object.__setattr__(self, "custom", dict(self.custom))

    # --- Builders

    @classmethod
    def create(cls, valid_for: Duration, *, now: Instant | None = None) -> Claims:
        """Claims issued and valid from ``now`` (default: current time) for ``valid_for``."""
        issued = time.time() if now is None else to_timestamp(now)
        return cls(issued_at=issued, not_before=issued, expires_at=issued + to_seconds(valid_for))

    def with_issuer(self, issuer: str) -> Self:
        return replace(self, issuer=issuer)

    def with_subject(self, subject: str) -> Self:
        return replace(self, subject=subject)

    def with_audience(self, audience: str) -> Self:
        return replace(self, audience=audience)

    def with_audiences(self, audiences: Iterable[str]) -> Self:
        return replace(self, audience=frozenset(audiences))

    def with_jwt_id(self, jwt_id: str) -> Self:
        return replace(self, jwt_id=jwt_id)

    def with_nonce(self, nonce: str) -> Self:
        return replace(self, nonce=nonce)

    def create_nonce(self) -> Self:
        """Attach a fresh random nonce; read it back from ``.nonce``."""
        return replace(self, nonce=secrets.token_urlsafe(NONCE_BYTES))

    def invalidate_before(self, instant: Instant) -> Self:
        return replace(self, not_before=to_timestamp(instant))

    def with_custom(self, **fields: Any) -> Self:
        return replace(self, custom={**self.custom, **fields})

    # --- Access

    @property
    def audiences(self) -> frozenset[str]:
        """Audience as a set (empty when absent)."""
        if self.audience is None:
            return frozenset()
        if isinstance(self.audience, str):
            return frozenset({self.audience})
        return self.audience

    def has(self, name: str) -> bool:
        """Return True if the claim ``name`` (reserved or custom) is present."""
        if name in _CLAIM_ATTRS:
            return getattr(self, _CLAIM_ATTRS[name]) is not None
        return name in self.custom

    def get(self, name: str, default: Any = None) -> Any:
        if name in _CLAIM_ATTRS:
            value = getattr(self, _CLAIM_ATTRS[name])
            return default if value is None else value
        return self.custom.get(name, default)

    # --- Serialization

    def to_dict(self) -> JSONObject:
        """Merge reserved and custom claims into one JSON-ready mapping."""
        out: JSONObject = {}
        for name, attr in _CLAIM_ATTRS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if name in _TIME_CLAIMS:
                value = _encode_time(value)
            elif name == "aud" and isinstance(value, frozenset):
                value = sorted(value)
            out[name] = value
        out.update(self.custom)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Claims:
        """Split a decoded claims object into reserved and custom parts.

        Raises:
            MalformedToken: If a reserved claim has the wrong type.
        """
        values: dict[str, Any] = {}
        for name in _TIME_CLAIMS:
            if name in data:
                value = data[name]
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise MalformedToken(f"Claim '{name}' must be a number")
                values[_CLAIM_ATTRS[name]] = value
        for name in _STRING_CLAIMS:
            if name in data:
                if not isinstance(data[name], str):
                    raise MalformedToken(f"Claim '{name}' must be a string")
                values[_CLAIM_ATTRS[name]] = data[name]
        if "aud" in data:
            aud = data["aud"]
            if isinstance(aud, list) and all(isinstance(a, str) for a in aud):
                aud = frozenset(aud)
            elif not isinstance(aud, str):
                raise MalformedToken("Claim 'aud' must be a string or a list of strings")
            values["audience"] = aud

        custom = {k: v for k, v in data.items() if k not in RESERVED_CLAIMS}
        try:
            return cls(**values, custom=custom)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedToken(f"Invalid claims: {e}") from e
