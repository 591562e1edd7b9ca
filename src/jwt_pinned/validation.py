"""Claim validation policy.

VerificationOptions is an immutable snapshot of what the caller trusts;
ClaimValidator applies it to claims whose signature has already verified.
Every time comparison in one call uses the single ``now`` passed in, so leeway
cannot be stretched by re-sampling the clock mid-check.
"""

from __future__ import annotations

import datetime
import hmac
import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

from .algorithms import AlgorithmId
from .claims import Duration, Instant, to_seconds, to_timestamp
from .codec import MAX_HEADER_LENGTH
from .errors import (
    InvalidAudience,
    InvalidIssuer,
    InvalidNonce,
    InvalidSubject,
    MissingRequiredClaim,
    OldTokenReused,
    TokenExpired,
    TokenNotYetValid,
)

if TYPE_CHECKING:
    from .claims import Claims

DEFAULT_LEEWAY: Final[float] = datetime.timedelta(minutes=15).total_seconds()
"""Default clock-skew tolerance applied to exp/nbf/iat checks."""


class AudienceMatch(Enum):
    """How token audiences are compared with ``allowed_audiences``.

    - INTERSECT: at least one token audience is allowed (default)
    - SUBSET: every token audience is allowed
    - EXACT: the token audience set is non-empty and equals the allowed set
    """

    INTERSECT = "intersect"
    SUBSET = "subset"
    EXACT = "exact"


class SystemClock:
    """Clock backed by ``time.time()``."""

    def now(self) -> float:
        return time.time()


def _string_set(value: str | Iterable[str] | None, name: str) -> frozenset[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset({value})
    items = frozenset(value)
    if not all(isinstance(item, str) for item in items):
        raise TypeError(f"{name} must contain only strings")
    return items


@dataclass(frozen=True, slots=True)
class VerificationOptions:
    """Configuration snapshot for one verification call.

    Misconfiguration weakens verification, so every check that is not
    configured here is simply not applied: set issuer and audience policy in
    production.

    Attributes:
        allowed_algorithms: Algorithms the caller trusts. ``None`` means
            exactly the verifying key's own algorithm. Whatever is allowed, a
            key still only verifies under its bound algorithm.
        required_claims: Claim names (reserved or custom) that must be present.
        leeway: Clock-skew tolerance in seconds (or timedelta) for exp/nbf/iat.
            Default: 15 minutes.
        reject_before: Reject tokens issued (``iat``) before this instant.
        max_token_lifetime: Reject tokens whose ``iat`` is older than this.
        allowed_issuers: Accepted ``iss`` values.
        allowed_audiences: Accepted ``aud`` values, compared per ``audience_match``.
        audience_match: Audience comparison mode. Default: INTERSECT.
        required_subject: Exact ``sub`` the token must carry.
        required_nonce: Exact ``nonce`` the token must carry.
        required_key_id: Exact ``kid`` header the token must carry.
        accept_future: Skip the ``nbf`` check.
        artificial_clock: Fixed "now" used instead of the clock (tests).
        max_header_length: Maximum encoded header length.

    Example:
        ```python
        options = VerificationOptions(
            allowed_issuers={"https://issuer.example"},
            allowed_audiences={"api://orders"},
            required_claims={"exp", "sub"},
            leeway=30,
        )
        ```
    """

    allowed_algorithms: frozenset[AlgorithmId] | None = None
    required_claims: frozenset[str] = frozenset()
    leeway: float = DEFAULT_LEEWAY
    reject_before: float | None = None
    max_token_lifetime: float | None = None
    allowed_issuers: frozenset[str] | None = None
    allowed_audiences: frozenset[str] | None = None
    audience_match: AudienceMatch = AudienceMatch.INTERSECT
    required_subject: str | None = None
    required_nonce: str | None = None
    required_key_id: str | None = None
    accept_future: bool = False
    artificial_clock: float | None = None
    max_header_length: int = MAX_HEADER_LENGTH

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        if self.allowed_algorithms is not None:
            algs = self.allowed_algorithms
            if isinstance(algs, str):
                algs = [algs]
            set_(self, "allowed_algorithms", frozenset(AlgorithmId.parse(a) for a in algs))
        set_(self, "required_claims", _string_set(self.required_claims, "required_claims") or frozenset())
        set_(self, "allowed_issuers", _string_set(self.allowed_issuers, "allowed_issuers"))
        set_(self, "allowed_audiences", _string_set(self.allowed_audiences, "allowed_audiences"))
        set_(self, "leeway", to_seconds(self.leeway))
        set_(self, "audience_match", AudienceMatch(self.audience_match))
        if self.max_token_lifetime is not None:
            set_(self, "max_token_lifetime", to_seconds(self.max_token_lifetime))
        if self.reject_before is not None:
            set_(self, "reject_before", to_timestamp(self.reject_before))
        if self.artificial_clock is not None:
            set_(self, "artificial_clock", to_timestamp(self.artificial_clock))
        if self.max_header_length <= 0:
            raise ValueError(f"max_header_length must be positive, got {self.max_header_length}")


def _describe_time(value: float) -> str:
    try:
        return datetime.datetime.fromtimestamp(value, datetime.UTC).isoformat()
    except (ValueError, OverflowError, OSError):
        return repr(value)


class ClaimValidator:
    """Applies VerificationOptions to decoded claims.

    Checks run in a fixed order and the first failure is raised; a token is
    either fully accepted or rejected with exactly one reason.
    """

    def validate(self, claims: Claims, options: VerificationOptions, now: Instant) -> Claims:
        """Validate ``claims`` against ``options`` at instant ``now``.

        Returns:
            The same claims on success.

        Raises:
            MissingRequiredClaim: A required claim (or one a configured
                ``reject_before``/``max_token_lifetime`` needs) is absent.
            OldTokenReused: ``iat`` precedes ``reject_before``.
            TokenNotYetValid: ``iat`` or ``nbf`` lies beyond ``now + leeway``.
            TokenExpired: ``now > exp + leeway`` or token older than
                ``max_token_lifetime``.
            InvalidIssuer / InvalidSubject / InvalidAudience / InvalidNonce:
                Identity policy not met (absence counts as a mismatch).
        """
        now = to_timestamp(now)
        self._check_required(claims, options)
        self._check_issued_at(claims, options, now)
        self._check_time_window(claims, options, now)
        self._check_issuer(claims, options)
        self._check_subject(claims, options)
        self._check_audience(claims, options)
        self._check_nonce(claims, options)
        return claims

    def _check_required(self, claims: Claims, options: VerificationOptions) -> None:
        for name in sorted(options.required_claims):
            if not claims.has(name):
                raise MissingRequiredClaim(name)

    def _check_issued_at(self, claims: Claims, options: VerificationOptions, now: float) -> None:
        iat = claims.issued_at
        needs_iat = options.reject_before is not None or options.max_token_lifetime is not None
        if iat is None:
            if needs_iat:
                raise MissingRequiredClaim("iat")
            return

        if iat > now + options.leeway:
            raise TokenNotYetValid(
                "Token was issued in the future",
                claim="iat",
                expected=f"<= {_describe_time(now + options.leeway)}",
                observed=_describe_time(iat),
            )
        if options.reject_before is not None and iat < options.reject_before:
            raise OldTokenReused(
                "Token was issued before the rejection cutoff",
                claim="iat",
                expected=f">= {_describe_time(options.reject_before)}",
                observed=_describe_time(iat),
            )
        if options.max_token_lifetime is not None and now - iat > options.max_token_lifetime:
            raise TokenExpired(
                "Token exceeds the maximum lifetime",
                claim="iat",
                expected=f"age <= {options.max_token_lifetime}s",
                observed=f"age {now - iat}s",
            )

    def _check_time_window(self, claims: Claims, options: VerificationOptions, now: float) -> None:
        nbf = claims.not_before
        if nbf is not None and not options.accept_future and now < nbf - options.leeway:
            raise TokenNotYetValid(
                "Token is not yet valid",
                claim="nbf",
                expected=f">= {_describe_time(nbf - options.leeway)}",
                observed=_describe_time(now),
            )

        exp = claims.expires_at
        if exp is not None and now > exp + options.leeway:
            raise TokenExpired(
                "Token has expired",
                claim="exp",
                expected=f"<= {_describe_time(exp + options.leeway)}",
                observed=_describe_time(now),
            )

    def _check_issuer(self, claims: Claims, options: VerificationOptions) -> None:
        allowed = options.allowed_issuers
        if allowed is not None and claims.issuer not in allowed:
            raise InvalidIssuer(
                "Invalid issuer", claim="iss", expected=sorted(allowed), observed=claims.issuer
            )

    def _check_subject(self, claims: Claims, options: VerificationOptions) -> None:
        required = options.required_subject
        if required is not None and claims.subject != required:
            raise InvalidSubject(
                "Invalid subject", claim="sub", expected=required, observed=claims.subject
            )

    def _check_audience(self, claims: Claims, options: VerificationOptions) -> None:
        allowed = options.allowed_audiences
        if allowed is None:
            return

        audiences = claims.audiences
        match options.audience_match:
            case AudienceMatch.INTERSECT:
                ok = bool(audiences & allowed)
            case AudienceMatch.SUBSET:
                ok = bool(audiences) and audiences <= allowed
            case AudienceMatch.EXACT:
                ok = bool(audiences) and audiences == allowed

        if not ok:
            raise InvalidAudience(
                f"Invalid audience ({options.audience_match.value})",
                claim="aud",
                expected=sorted(allowed),
                observed=sorted(audiences),
            )

    def _check_nonce(self, claims: Claims, options: VerificationOptions) -> None:
        required = options.required_nonce
        if required is None:
            return
        if claims.nonce is None or not hmac.compare_digest(
            claims.nonce.encode("utf-8"), required.encode("utf-8")
        ):
            raise InvalidNonce
