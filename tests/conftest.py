from typing import Any, Dict, List, Optional, Set

import pytest

from useractor.ports import LookupKey, TokenResult
from useractor.runtime import ActorHost, TokenIssuer
from useractor.types import ActorResponse, CallContext, IdentityClass, Method

TEST_SECRET = "test-secret-key-for-testing-only-0123456789abcdef"


class FakeRuntime:
    """
    In-memory Runtime double that records every collaborator call.
    """

    def __init__(
        self,
        existing_emails: Optional[Set[str]] = None,
        create_response: Optional[ActorResponse] = None,
        validate_response: Optional[ActorResponse] = None,
        token: Optional[TokenResult] = None,
    ) -> None:
        self.existing_emails = set(existing_emails or ())
        self.create_response = create_response or ActorResponse(status_code=200, body={"userId": "bob"})
        self.validate_response = validate_response or ActorResponse(status_code=200, body={"userId": "bob"})
        self.token = token or TokenResult(success=True, data={"accessToken": "tok", "tokenType": "Bearer", "expiresIn": 60})
        self.calls: List[tuple] = []

    def get_instance(self, *, lookup_key: Optional[LookupKey] = None, body: Optional[Dict[str, Any]] = None) -> ActorResponse:
        if lookup_key is not None:
            self.calls.append(("lookup", lookup_key.name, lookup_key.value))
            if lookup_key.value in self.existing_emails:
                return ActorResponse(status_code=200, body={"instanceId": "existing"})
            return ActorResponse(status_code=404, body={"message": "Instance not found"})
        self.calls.append(("create", dict(body or {})))
        return self.create_response

    def method_call(self, *, lookup_key: LookupKey, method: Method, body: Dict[str, Any]) -> ActorResponse:
        self.calls.append(("method_call", lookup_key.value, method, dict(body)))
        return self.validate_response

    def generate_custom_token(self, *, identity: str, user_id: str) -> TokenResult:
        self.calls.append(("token", identity, user_id))
        return self.token


@pytest.fixture
def fake_runtime():
    return FakeRuntime


@pytest.fixture
def tokens():
    return TokenIssuer(TEST_SECRET, ttl_seconds=600)


@pytest.fixture
def host(tmp_path, tokens):
    return ActorHost(str(tmp_path / "actors.db"), tokens)


@pytest.fixture
def register(host):
    """Register a user through the host as an unauthenticated caller."""

    def _register(name: str = "bob", email: str = "bob@x.com", password: str = "longenough1") -> ActorResponse:
        ctx = CallContext(identity=IdentityClass.NONE, method=Method.REGISTER)
        return host.call(ctx, {"name": name, "email": email, "password": password})

    return _register


@pytest.fixture
def as_self():
    """Context for a user calling a method on their own instance."""

    def _ctx(method: Method, user_id: str = "bob", instance_id: Optional[str] = None) -> CallContext:
        return CallContext(
            identity=IdentityClass.USER,
            method=method,
            user_id=user_id,
            instance_id=instance_id or user_id,
        )

    return _ctx
