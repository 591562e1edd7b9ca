import datetime

import pytest

import jwt_pinned as m


def test_create_sets_time_window(now):
    claims = m.Claims.create(valid_for=datetime.timedelta(hours=1), now=now)

    assert claims.issued_at == now
    assert claims.not_before == now
    assert claims.expires_at == now + 3600


def test_builders_return_new_instances(now):
    base = m.Claims.create(60, now=now)
    claims = (
        base.with_issuer("https://issuer.example")
        .with_subject("alice")
        .with_audience("api")
        .with_jwt_id("id-1")
        .with_nonce("n-1")
        .with_custom(scope="read", tenant={"id": 7})
    )

    assert base.subject is None
    assert claims.issuer == "https://issuer.example"
    assert claims.subject == "alice"
    assert claims.audience == "api"
    assert claims.jwt_id == "id-1"
    assert claims.nonce == "n-1"
    assert claims.custom == {"scope": "read", "tenant": {"id": 7}}


def test_create_nonce_is_random():
    a = m.Claims().create_nonce()
    b = m.Claims().create_nonce()

    assert a.nonce and b.nonce
    assert a.nonce != b.nonce


def test_datetimes_are_converted_to_seconds():
    aware = datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC)
    naive = datetime.datetime(2024, 1, 1)

    assert m.Claims(expires_at=aware).expires_at == aware.timestamp()
    assert m.Claims(expires_at=naive).expires_at == aware.timestamp()
    assert m.Claims().invalidate_before(aware).not_before == aware.timestamp()


def test_audience_shape_is_kept():
    single = m.Claims(audience="api")
    many = m.Claims().with_audiences(["a", "b"])

    assert single.audience == "api"
    assert single.audiences == frozenset({"api"})
    assert many.audience == frozenset({"a", "b"})
    assert m.Claims().audiences == frozenset()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"issuer": 1},
        {"subject": ["alice"]},
        {"expires_at": "tomorrow"},
        {"issued_at": True},
        {"audience": [1, 2]},
    ],
)
def test_wrongly_typed_reserved_values_rejected(kwargs):
    with pytest.raises(TypeError):
        m.Claims(**kwargs)


def test_non_finite_times_rejected():
    with pytest.raises(ValueError):
        m.Claims(expires_at=float("inf"))


def test_custom_claims_cannot_shadow_reserved_names():
    with pytest.raises(ValueError, match="reserved"):
        m.Claims(custom={"exp": 1})
    with pytest.raises(ValueError):
        m.Claims().with_custom(sub="mallory")


def test_has_and_get_cover_reserved_and_custom():
    claims = m.Claims(subject="alice", custom={"role": "admin"})

    assert claims.has("sub")
    assert not claims.has("exp")
    assert claims.has("role")
    assert not claims.has("missing")
    assert claims.get("sub") == "alice"
    assert claims.get("role") == "admin"
    assert claims.get("exp", 0) == 0


def test_to_dict_merges_reserved_and_custom(now):
    claims = m.Claims(
        issuer="iss",
        audience=frozenset({"b", "a"}),
        expires_at=now,
        not_before=now + 0.5,
        custom={"x": [1, 2]},
    )

    assert claims.to_dict() == {
        "iss": "iss",
        "aud": ["a", "b"],
        "exp": int(now),
        "nbf": now + 0.5,
        "x": [1, 2],
    }


def test_from_dict_splits_reserved_and_custom():
    claims = m.Claims.from_dict(
        {"sub": "alice", "aud": ["x", "y"], "exp": 10, "iat": 5.5, "role": "admin"}
    )

    assert claims.subject == "alice"
    assert claims.audience == frozenset({"x", "y"})
    assert claims.expires_at == 10.0
    assert claims.issued_at == 5.5
    assert claims.custom == {"role": "admin"}


@pytest.mark.parametrize(
    "data",
    [
        {"exp": "10"},
        {"nbf": True},
        {"iss": 5},
        {"aud": 5},
        {"aud": ["ok", 5]},
        {"nonce": None},
        {"exp": 1e400},
        {"exp": 10**400},
        {"nbf": -(10**309)},
    ],
)
def test_from_dict_rejects_wrong_types(data):
    with pytest.raises(m.MalformedToken):
        m.Claims.from_dict(data)


def test_header_to_dict_omits_absent_fields():
    header = m.Header(algorithm=m.AlgorithmId.ES256, key_id="k1")
    assert header.to_dict() == {"alg": "ES256", "typ": "JWT", "kid": "k1"}

    bare = m.Header(algorithm=m.AlgorithmId.HS256, token_type=None, content_type="JWT")
    assert bare.to_dict() == {"alg": "HS256", "cty": "JWT"}


def test_header_from_dict():
    header = m.Header.from_dict({"alg": "PS256", "kid": "k", "typ": "at+jwt", "jku": "https://x"})

    assert header.algorithm is m.AlgorithmId.PS256
    assert header.key_id == "k"
    assert header.token_type == "at+jwt"
    assert header.extra == {"jku": "https://x"}


@pytest.mark.parametrize("data", [{}, {"alg": 1}, {"alg": "HS256", "kid": 2}, {"alg": "HS256", "crit": "x"}])
def test_header_from_dict_rejects_malformed(data):
    with pytest.raises(m.MalformedToken):
        m.Header.from_dict(data)


def test_header_from_dict_rejects_none_algorithm():
    with pytest.raises(m.UnsupportedAlgorithm):
        m.Header.from_dict({"alg": "none"})
