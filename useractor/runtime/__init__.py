"""
runtime package

Local stand-in for the actor platform: SQLite state store + lookup index, JWT token
issuer, and the dispatching host.
"""

from .host import ActorHost
from .tokens import TokenIssuer

__all__ = [
    "ActorHost",
    "TokenIssuer",
]
