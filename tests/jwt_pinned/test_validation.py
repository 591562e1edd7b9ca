import datetime

import pytest

import jwt_pinned as m


@pytest.fixture
def validator():
    return m.ClaimValidator()


def test_default_leeway_is_fifteen_minutes():
    assert m.VerificationOptions().leeway == 900.0


def test_options_normalize_inputs():
    opts = m.VerificationOptions(
        allowed_algorithms="RS256",
        required_claims=["exp", "sub"],
        allowed_issuers="iss",
        allowed_audiences=("a", "b"),
        leeway=datetime.timedelta(seconds=30),
        max_token_lifetime=datetime.timedelta(hours=1),
        reject_before=datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC),
        audience_match="subset",
    )

    assert opts.allowed_algorithms == frozenset({m.AlgorithmId.RS256})
    assert opts.required_claims == frozenset({"exp", "sub"})
    assert opts.allowed_issuers == frozenset({"iss"})
    assert opts.allowed_audiences == frozenset({"a", "b"})
    assert opts.leeway == 30.0
    assert opts.max_token_lifetime == 3600.0
    assert opts.reject_before == datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC).timestamp()
    assert opts.audience_match is m.AudienceMatch.SUBSET


def test_options_reject_invalid_values():
    with pytest.raises(m.UnsupportedAlgorithm):
        m.VerificationOptions(allowed_algorithms={"none"})
    with pytest.raises(ValueError):
        m.VerificationOptions(leeway=-1)
    with pytest.raises(ValueError):
        m.VerificationOptions(audience_match="some")
    with pytest.raises(ValueError):
        m.VerificationOptions(max_header_length=0)
    with pytest.raises(TypeError):
        m.VerificationOptions(allowed_issuers=[1])


# --- Time bounds


@pytest.mark.parametrize("offset, ok", [(-1, True), (0, True), (1, False)])
def test_expiry_boundary_with_leeway(validator, now, offset, ok):
    opts = m.VerificationOptions(leeway=60)
    claims = m.Claims(expires_at=now)

    if ok:
        assert validator.validate(claims, opts, now + 60 + offset) is claims
    else:
        with pytest.raises(m.TokenExpired) as exc:
            validator.validate(claims, opts, now + 60 + offset)
        assert exc.value.claim == "exp"
        assert exc.value.kind == "TokenExpired"


@pytest.mark.parametrize("offset, ok", [(1, True), (0, True), (-1, False)])
def test_not_before_boundary_with_leeway(validator, now, offset, ok):
    opts = m.VerificationOptions(leeway=60)
    claims = m.Claims(not_before=now)

    if ok:
        validator.validate(claims, opts, now - 60 + offset)
    else:
        with pytest.raises(m.TokenNotYetValid) as exc:
            validator.validate(claims, opts, now - 60 + offset)
        assert exc.value.claim == "nbf"


def test_accept_future_skips_not_before(validator, now):
    claims = m.Claims(not_before=now + 10_000)
    validator.validate(claims, m.VerificationOptions(accept_future=True), now)


def test_future_issued_at_rejected(validator, now):
    opts = m.VerificationOptions(leeway=0)
    with pytest.raises(m.TokenNotYetValid) as exc:
        validator.validate(m.Claims(issued_at=now + 1), opts, now)
    assert exc.value.claim == "iat"


def test_reject_before(validator, now):
    opts = m.VerificationOptions(reject_before=now - 100)

    validator.validate(m.Claims(issued_at=now - 100), opts, now)
    with pytest.raises(m.OldTokenReused) as exc:
        validator.validate(m.Claims(issued_at=now - 101), opts, now)
    assert isinstance(exc.value, m.TokenExpired)


def test_max_token_lifetime(validator, now):
    opts = m.VerificationOptions(max_token_lifetime=3600)

    validator.validate(m.Claims(issued_at=now - 3600), opts, now)
    with pytest.raises(m.TokenExpired) as exc:
        validator.validate(m.Claims(issued_at=now - 3601), opts, now)
    assert exc.value.claim == "iat"


@pytest.mark.parametrize(
    "opts",
    [m.VerificationOptions(reject_before=0), m.VerificationOptions(max_token_lifetime=60)],
)
def test_iat_policies_require_iat(validator, now, opts):
    with pytest.raises(m.MissingRequiredClaim) as exc:
        validator.validate(m.Claims(subject="x"), opts, now)
    assert exc.value.claim == "iat"


def test_absent_time_claims_are_not_checked(validator, now):
    validator.validate(m.Claims(), m.VerificationOptions(leeway=0), now)


def test_leeway_accepts_timedelta(validator, now):
    opts = m.VerificationOptions(leeway=datetime.timedelta(minutes=1))
    validator.validate(m.Claims(expires_at=now - 59), opts, now)


def test_error_carries_readable_bounds(validator, now):
    with pytest.raises(m.TokenExpired) as exc:
        validator.validate(m.Claims(expires_at=now), m.VerificationOptions(leeway=0), now + 5)

    assert "2023-11-14" in exc.value.observed
    assert exc.value.expected.startswith("<= ")


def test_out_of_range_times_are_rejected_as_token_errors(validator, now):
    with pytest.raises(m.TokenNotYetValid) as exc:
        validator.validate(m.Claims(not_before=1e18), m.VerificationOptions(leeway=0), now)
    assert exc.value.expected == ">= 1e+18"

    with pytest.raises(m.TokenExpired):
        validator.validate(m.Claims(expires_at=-1e18), m.VerificationOptions(), now)
    with pytest.raises(m.TokenNotYetValid):
        validator.validate(m.Claims(issued_at=1e300), m.VerificationOptions(), now)


# --- Required claims


def test_required_claims(validator, now):
    opts = m.VerificationOptions(required_claims={"exp", "tenant"})

    validator.validate(m.Claims(expires_at=now + 10, custom={"tenant": "t1"}), opts, now)

    with pytest.raises(m.MissingRequiredClaim) as exc:
        validator.validate(m.Claims(custom={"tenant": "t1"}), opts, now)
    assert exc.value.claim == "exp"
    assert str(exc.value) == 'Token is missing the "exp" claim'

    with pytest.raises(m.MissingRequiredClaim) as exc:
        validator.validate(m.Claims(expires_at=now + 10), opts, now)
    assert exc.value.claim == "tenant"


# --- Identity claims


def test_issuer(validator, now):
    opts = m.VerificationOptions(allowed_issuers={"https://a", "https://b"})

    validator.validate(m.Claims(issuer="https://b"), opts, now)
    with pytest.raises(m.InvalidIssuer) as exc:
        validator.validate(m.Claims(issuer="https://c"), opts, now)
    assert exc.value.observed == "https://c"
    assert exc.value.expected == ["https://a", "https://b"]

    with pytest.raises(m.InvalidIssuer):
        validator.validate(m.Claims(), opts, now)


def test_subject(validator, now):
    opts = m.VerificationOptions(required_subject="alice")

    validator.validate(m.Claims(subject="alice"), opts, now)
    with pytest.raises(m.InvalidSubject):
        validator.validate(m.Claims(subject="bob"), opts, now)
    with pytest.raises(m.InvalidSubject):
        validator.validate(m.Claims(), opts, now)


@pytest.mark.parametrize(
    "mode, audience, ok",
    [
        (m.AudienceMatch.INTERSECT, "a", True),
        (m.AudienceMatch.INTERSECT, ["a", "z"], True),
        (m.AudienceMatch.INTERSECT, ["z"], False),
        (m.AudienceMatch.INTERSECT, None, False),
        (m.AudienceMatch.SUBSET, ["a"], True),
        (m.AudienceMatch.SUBSET, ["a", "b"], True),
        (m.AudienceMatch.SUBSET, ["a", "z"], False),
        (m.AudienceMatch.SUBSET, None, False),
        (m.AudienceMatch.EXACT, ["a", "b"], True),
        (m.AudienceMatch.EXACT, ["a"], False),
        (m.AudienceMatch.EXACT, ["a", "b", "c"], False),
    ],
)
def test_audience_modes(validator, now, mode, audience, ok):
    opts = m.VerificationOptions(allowed_audiences={"a", "b"}, audience_match=mode)
    claims = m.Claims(audience=audience)

    if ok:
        validator.validate(claims, opts, now)
    else:
        with pytest.raises(m.InvalidAudience):
            validator.validate(claims, opts, now)


@pytest.mark.parametrize("mode", list(m.AudienceMatch))
def test_empty_allowed_audiences_reject_every_token(validator, now, mode):
    opts = m.VerificationOptions(allowed_audiences=frozenset(), audience_match=mode)

    for audience in (None, "a", []):
        with pytest.raises(m.InvalidAudience):
            validator.validate(m.Claims(audience=audience), opts, now)


def test_audience_not_checked_when_unconfigured(validator, now):
    validator.validate(m.Claims(audience="anything"), m.VerificationOptions(), now)


def test_nonce(validator, now):
    opts = m.VerificationOptions(required_nonce="n-123")

    validator.validate(m.Claims(nonce="n-123"), opts, now)
    with pytest.raises(m.InvalidNonce) as exc:
        validator.validate(m.Claims(nonce="n-124"), opts, now)
    assert exc.value.expected is None
    assert exc.value.observed is None
    assert "n-12" not in str(exc.value)

    with pytest.raises(m.InvalidNonce):
        validator.validate(m.Claims(), opts, now)


def test_first_failure_wins(validator, now):
    opts = m.VerificationOptions(leeway=0, allowed_issuers={"good"}, required_claims={"sub"})
    claims = m.Claims(issuer="bad", expires_at=now - 10)

    with pytest.raises(m.MissingRequiredClaim):
        validator.validate(claims, opts, now)
    with pytest.raises(m.TokenExpired):
        validator.validate(claims.with_subject("x"), opts, now)
