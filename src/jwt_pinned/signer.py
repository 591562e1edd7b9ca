"""Token signing pipeline.

Signing is linear: the header algorithm is taken from the key (never from the
caller), claims are serialized, the signed region is signed, and the
signature is framed into the final token.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import codec
from .claims import Header
from .errors import KeyAlgorithmMismatch

if TYPE_CHECKING:
    from .claims import Claims
    from .keys import KeyHandle

logger = logging.getLogger(__name__)


class JWTSigner:
    """Issues compact tokens with one algorithm-bound key.

    Example:
        ```python
        key = SymmetricKey.generate(AlgorithmId.HS256, key_id="k1")
        token = JWTSigner(key).sign(Claims.create(3600).with_subject("alice"))
        ```
    """

    def __init__(self, key: KeyHandle) -> None:
        """Initialize the signer.

        Raises:
            KeyAlgorithmMismatch: If ``key`` cannot sign (public key).
        """
        if not key.can_sign:
            raise KeyAlgorithmMismatch(f"{type(key).__name__} cannot be used to sign tokens")
        self._key = key

    @property
    def key(self) -> KeyHandle:
        return self._key

    def header(
        self,
        *,
        key_id: str | None = None,
        content_type: str | None = None,
        token_type: str | None = "JWT",
    ) -> Header:
        """Header for the next token; ``alg`` always comes from the key."""
        return Header(
            algorithm=self._key.algorithm,
            key_id=key_id if key_id is not None else self._key.key_id,
            content_type=content_type,
            token_type=token_type,
        )

    def sign(
        self,
        claims: Claims,
        *,
        key_id: str | None = None,
        content_type: str | None = None,
        token_type: str | None = "JWT",
    ) -> str:
        """Sign ``claims`` and return the compact token.

        Args:
            claims: Claims to embed.
            key_id: ``kid`` override; defaults to the key's own id.
            content_type: Optional ``cty``.
            token_type: ``typ``; ``None`` omits it.
        """
        header = self.header(key_id=key_id, content_type=content_type, token_type=token_type)
        token = codec.encode(header, claims, self._key.sign)
        logger.debug("Signed token with %s (kid=%s)", header.algorithm, header.key_id)
        return token


def sign_token(claims: Claims, key: KeyHandle, **header_fields: str | None) -> str:
    """Sign ``claims`` with ``key``; shorthand for ``JWTSigner(key).sign``."""
    return JWTSigner(key).sign(claims, **header_fields)
