"""
User Authorization Gate
-----------------------
Pure policy deciding whether a method invocation on the User class may proceed.

This module must have:
- no side effects
- no I/O
- no framework dependencies

It answers one question only:
May this caller invoke this method on this instance?

Precedence (first match wins):
1. developer -> allow
2. user calling as the STATIC internal caller -> allow INIT / validatePassword, 403 otherwise
3. per-method rule (anonymous entry points, self-service)
4. default deny (401)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from .types import STATIC_CALLER, CallContext, IdentityClass, Method


class MethodRule(str, Enum):
    # Reachable only through the internal STATIC caller.
    INTERNAL = "internal"
    # Reachable only by unauthenticated callers.
    ANONYMOUS_ENTRYPOINT = "anonymous_entrypoint"
    # Reachable only by the user whose instance is the target.
    SELF_SERVICE = "self_service"


# Every Method must appear here. Adding a method without classifying it fails at import.
METHOD_RULES: Dict[Method, MethodRule] = {
    Method.INIT: MethodRule.INTERNAL,
    Method.VALIDATE_PASSWORD: MethodRule.INTERNAL,
    Method.REGISTER: MethodRule.ANONYMOUS_ENTRYPOINT,
    Method.LOGIN: MethodRule.ANONYMOUS_ENTRYPOINT,
    Method.UPDATE_PROFILE: MethodRule.SELF_SERVICE,
    Method.GET_STATE: MethodRule.SELF_SERVICE,
    Method.SET_STATE: MethodRule.SELF_SERVICE,
}

_unclassified = set(Method) - set(METHOD_RULES)
if _unclassified:
    raise RuntimeError(f"Unclassified User methods: {sorted(m.value for m in _unclassified)}")

UNAUTHENTICATED_IDENTITIES: FrozenSet[IdentityClass] = frozenset({IdentityClass.ANONYMOUS, IdentityClass.NONE})


@dataclass(frozen=True)
class GateDecision:
    allow: bool
    status_code: int
    reason: str


def _allow(reason: str) -> GateDecision:
    return GateDecision(allow=True, status_code=200, reason=reason)


def _deny(status_code: int, reason: str) -> GateDecision:
    return GateDecision(allow=False, status_code=status_code, reason=reason)


def authorize(ctx: CallContext) -> GateDecision:
    """
    Decide a single invocation. Total over (identity, method) including unknown values:
    anything not explicitly allowed is denied.
    """
    identity = ctx.identity
    method = ctx.method

    # --- Full trust ---
    if identity == IdentityClass.DEVELOPER:
        return _allow("DEVELOPER")

    # --- Internal instance-to-instance calls ---
    if identity == IdentityClass.USER and ctx.user_id == STATIC_CALLER:
        if method is not None and METHOD_RULES[method] == MethodRule.INTERNAL:
            return _allow("STATIC_CALLER")
        return _deny(403, "STATIC_CALLER_METHOD_NOT_INTERNAL")

    # --- Per-method rules ---
    rule = METHOD_RULES.get(method) if method is not None else None

    if rule == MethodRule.ANONYMOUS_ENTRYPOINT:
        if identity in UNAUTHENTICATED_IDENTITIES:
            return _allow("ANONYMOUS_ENTRYPOINT")
        return _deny(403, "ENTRYPOINT_REQUIRES_UNAUTHENTICATED")

    if rule == MethodRule.SELF_SERVICE:
        if identity == IdentityClass.USER and ctx.user_id is not None and ctx.user_id == ctx.instance_id:
            return _allow("SELF_SERVICE")
        return _deny(403, "NOT_SELF")

    # INTERNAL methods from anyone but the STATIC caller, unknown methods, unknown identities.
    return _deny(401, "DEFAULT_DENY")
