"""User actor package.

Contract:
- One User instance per registered email; instance id = registration name.
- Every method invocation passes the authorization gate first (fail-closed).
- Instance state is versioned; setState is a compare-and-swap on that version.
- The hosting runtime (state store, lookup index, token issuer) is injected, never global.
"""
from __future__ import annotations

from .gate import GateDecision, authorize
from .types import STATIC_CALLER, ActorResponse, CallContext, IdentityClass, InstanceData, Method

__all__ = [
    "authorize",
    "GateDecision",
    "STATIC_CALLER",
    "ActorResponse",
    "CallContext",
    "IdentityClass",
    "InstanceData",
    "Method",
]
