from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .types import ActorResponse, Method


@dataclass(frozen=True)
class LookupKey:
    """
    Secondary index entry: business key -> instance id (e.g. name="email").
    """
    name: str
    value: str


@dataclass(frozen=True)
class TokenResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@runtime_checkable
class Runtime(Protocol):
    """
    What the User methods require from the hosting platform.

    Implementations must not raise for collaborator failures; they report them through
    the returned status / success flag so callers decide how to surface them.
    """

    def get_instance(
        self,
        *,
        lookup_key: Optional[LookupKey] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> ActorResponse:
        """
        With `lookup_key`: resolve an existing instance (200 {instanceId} or 404).
        With `body`: create a new instance initialised from `body`.
        A 409 whose body code is DUPLICATE_LOOKUP_KEY means another instance owns the key.
        """
        ...

    def method_call(
        self,
        *,
        lookup_key: LookupKey,
        method: Method,
        body: Dict[str, Any],
    ) -> ActorResponse:
        """
        Resolve an instance by lookup key and invoke `method` on it as the internal caller.
        """
        ...

    def generate_custom_token(self, *, identity: str, user_id: str) -> TokenResult:
        ...


# Error codes carried in 409 bodies from instance creation / state commits.
DUPLICATE_LOOKUP_KEY = "DUPLICATE_LOOKUP_KEY"
DUPLICATE_INSTANCE = "DUPLICATE_INSTANCE"
