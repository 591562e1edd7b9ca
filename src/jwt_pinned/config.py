"""Environment-driven verification policy.

Builds VerificationOptions from ``JWT_*`` environment variables, loading a
``.env`` file with python-dotenv when no explicit mapping is supplied::

    JWT_ALLOWED_ALGORITHMS=RS256
    JWT_ALLOWED_ISSUERS=https://issuer.example/
    JWT_ALLOWED_AUDIENCES=api://orders,api://billing
    JWT_AUDIENCE_MATCH=intersect
    JWT_REQUIRED_CLAIMS=exp,sub
    JWT_LEEWAY=30
    JWT_MAX_TOKEN_LIFETIME=86400
    JWT_REQUIRED_KEY_ID=signing-2024

List values are comma-separated. Unset variables keep the option defaults.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from dotenv import find_dotenv, load_dotenv

from .errors import UnsupportedAlgorithm
from .validation import AudienceMatch, VerificationOptions


def _split(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _seconds(name: str, value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from e
    if seconds < 0:
        raise ValueError(f"{name} must not be negative, got {value!r}")
    return seconds


def options_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    prefix: str = "JWT_",
    dotenv_path: str | os.PathLike[str] | None = None,
) -> VerificationOptions:
    """Build VerificationOptions from environment variables.

    Args:
        environ: Variables to read. When None, ``.env`` is loaded into the
            process environment and ``os.environ`` is used.
        prefix: Variable name prefix.
        dotenv_path: ``.env`` file to load; searched upwards from the
            working directory when omitted. Existing variables win.

    Raises:
        ValueError: If a variable holds an invalid value (unknown algorithm,
            audience mode, or non-numeric duration).
    """
    if environ is None:
        load_dotenv(dotenv_path or find_dotenv(usecwd=True))
        environ = os.environ

    def get(name: str) -> str | None:
        value = environ.get(f"{prefix}{name}")
        return value.strip() if value and value.strip() else None

    kwargs: dict[str, Any] = {}

    if (value := get("ALLOWED_ALGORITHMS")) is not None:
        kwargs["allowed_algorithms"] = _split(value)
    if (value := get("REQUIRED_CLAIMS")) is not None:
        kwargs["required_claims"] = _split(value)
    if (value := get("ALLOWED_ISSUERS")) is not None:
        kwargs["allowed_issuers"] = _split(value)
    if (value := get("ALLOWED_AUDIENCES")) is not None:
        kwargs["allowed_audiences"] = _split(value)
    if (value := get("AUDIENCE_MATCH")) is not None:
        try:
            kwargs["audience_match"] = AudienceMatch(value.lower())
        except ValueError as e:
            raise ValueError(f"{prefix}AUDIENCE_MATCH must be one of intersect, subset, exact") from e
    if (value := get("LEEWAY")) is not None:
        kwargs["leeway"] = _seconds(f"{prefix}LEEWAY", value)
    if (value := get("MAX_TOKEN_LIFETIME")) is not None:
        kwargs["max_token_lifetime"] = _seconds(f"{prefix}MAX_TOKEN_LIFETIME", value)
    if (value := get("REQUIRED_KEY_ID")) is not None:
        kwargs["required_key_id"] = value

    try:
        return VerificationOptions(**kwargs)
    except UnsupportedAlgorithm as e:
        raise ValueError(f"{prefix}ALLOWED_ALGORITHMS: {e}") from e
