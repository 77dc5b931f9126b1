"""Push-token format rules and the validated token registry.

Mental model refresher:
- A user document stores `tokens: {scope: [token, ...]}`.
- Raw document data is untrusted; it becomes a `TokenRegistry` here or the
  user is rejected with `RegistryShapeError`.
- Nothing downstream inspects raw registry data again.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from ..types import RegistryShapeError, Scope, Token

_BRACKETED_TOKEN = re.compile(r"^(?:Exponent|Expo)PushToken\[.+\]$")
_UUID_TOKEN = re.compile(
    r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE
)


def is_push_token(value: Any) -> bool:
    """Return True when `value` has the provider's push-token format."""
    if not isinstance(value, str):
        return False
    return bool(_BRACKETED_TOKEN.match(value) or _UUID_TOKEN.match(value))


@dataclass(frozen=True)
class TokenRegistry:
    scopes: tuple[tuple[Scope, tuple[Token, ...]], ...]

    def __iter__(self) -> Iterator[tuple[Scope, tuple[Token, ...]]]:
        return iter(self.scopes)

    def __len__(self) -> int:
        return len(self.scopes)


def parse_token_registry(raw: Any) -> TokenRegistry:
    """Validate raw registry data into a `TokenRegistry`.

    Token *format* is not checked here; malformed tokens are a per-token
    concern of the resolver. Only the container shape is enforced.
    """
    if raw is None:
        raise RegistryShapeError("token registry is missing")
    if not isinstance(raw, Mapping):
        raise RegistryShapeError(
            f"token registry must be a mapping, got {type(raw).__name__}"
        )

    scopes: list[tuple[Scope, tuple[Token, ...]]] = []
    for scope, tokens in raw.items():
        if not isinstance(scope, str) or not scope:
            raise RegistryShapeError(f"invalid scope name: {scope!r}")
        if not isinstance(tokens, (list, tuple)):
            raise RegistryShapeError(
                f"scope {scope!r} must hold a list, got {type(tokens).__name__}"
            )
        if not all(isinstance(token, str) for token in tokens):
            raise RegistryShapeError(f"scope {scope!r} must hold only strings")
        scopes.append((scope, tuple(dict.fromkeys(tokens))))
    return TokenRegistry(scopes=tuple(scopes))
