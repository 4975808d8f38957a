"""
useractor/types.py

Closed vocabularies and call envelopes shared by the gate, the User methods and the host.

This module performs no I/O and is safe to import anywhere.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# Caller user id stamped on instance-to-instance calls made on behalf of the system.
STATIC_CALLER = "STATIC"


class IdentityClass(str, Enum):
    """
    Trust category attached to an inbound call by the authentication layer.

    - DEVELOPER: operational/administrative caller (full trust)
    - ANONYMOUS: holder of an anonymous token
    - NONE: no credentials at all
    - USER: holder of a user token bound to one instance
    """

    DEVELOPER = "developer"
    ANONYMOUS = "anonymous"
    NONE = "none"
    USER = "user"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["IdentityClass"]:
        tag = (raw or "").strip().lower()
        for member in cls:
            if member.value == tag:
                return member
        return None


class Method(str, Enum):
    """
    Every entry point of the User class. Values are the wire method names.
    """

    INIT = "INIT"
    REGISTER = "register"
    LOGIN = "login"
    VALIDATE_PASSWORD = "validatePassword"
    UPDATE_PROFILE = "updateProfile"
    GET_STATE = "getState"
    SET_STATE = "setState"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Method"]:
        name = (raw or "").strip()
        for member in cls:
            if member.value == name:
                return member
        return None

    @property
    def is_static(self) -> bool:
        # Static methods run without a target instance.
        return self in (Method.REGISTER, Method.LOGIN)


@dataclass(frozen=True)
class CallContext:
    """
    Who is calling what.

    `user_id` is the caller's instance id (None for unauthenticated callers,
    STATIC_CALLER for internal calls). `instance_id` is the target (None for static methods).
    """

    identity: Optional[IdentityClass]
    method: Optional[Method]
    user_id: Optional[str] = None
    instance_id: Optional[str] = None


@dataclass
class ActorResponse:
    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= int(self.status_code) < 300


@dataclass
class InstanceData:
    """
    Per-call envelope handed to a User method.

    Handlers read `body`, `state` and `version`, set `response`, and change state only
    through `replace_state()` so the host knows to commit. Lookup keys requested in
    `lookup_keys` are committed together with the state; a `None` value drops the key.
    """

    context: CallContext
    body: Dict[str, Any] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    version: int = 0
    lookup_keys: Dict[str, Optional[str]] = field(default_factory=dict)
    response: Optional[ActorResponse] = None
    dirty: bool = False

    def replace_state(self, new_state: Dict[str, Any]) -> None:
        self.state = copy.deepcopy(new_state)
        self.dirty = True

    @property
    def private(self) -> Dict[str, Any]:
        return dict(self.state.get("private") or {})


def empty_state() -> Dict[str, Any]:
    return {"public": {}, "private": {}}
