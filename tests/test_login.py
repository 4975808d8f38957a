"""
Tests for login / validatePassword

Verifies:
- Correct credentials yield a verifiable user token
- Wrong password and unknown email are indistinguishable
- Token issuance failure is a 500 and is not retried
- validatePassword is only reachable as the internal caller
"""

import pytest

from useractor import errors
from useractor import user as user_class
from useractor.ports import TokenResult
from useractor.runtime import ActorHost, TokenIssuer
from useractor.types import ActorResponse, CallContext, IdentityClass, InstanceData, Method


def _anon(method):
    return CallContext(identity=IdentityClass.NONE, method=method)


class TestLoginThroughHost:
    def test_correct_credentials_issue_user_token(self, host, register, tokens):
        register()
        resp = host.call(_anon(Method.LOGIN), {"email": "bob@x.com", "password": "longenough1"})
        assert resp.status_code == 200
        assert resp.body["tokenType"] == "Bearer"
        claims = tokens.verify(resp.body["accessToken"])
        assert claims["identity"] == "user"
        assert claims["userId"] == "bob"

    def test_wrong_password(self, host, register):
        register()
        resp = host.call(_anon(Method.LOGIN), {"email": "bob@x.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.body == {"message": "Invalid email or password"}

    def test_unknown_email_looks_like_wrong_password(self, host, register):
        register()
        wrong_pw = host.call(_anon(Method.LOGIN), {"email": "bob@x.com", "password": "wrong"})
        unknown = host.call(_anon(Method.LOGIN), {"email": "nobody@x.com", "password": "wrong"})
        assert unknown.status_code == wrong_pw.status_code == 401
        assert unknown.body == wrong_pw.body

    def test_missing_fields_are_invalid_credentials(self, host):
        resp = host.call(_anon(Method.LOGIN), {})
        assert resp.status_code == 401
        assert resp.body == {"message": "Invalid email or password"}

    def test_logged_in_user_cannot_call_login(self, host, register):
        register()
        ctx = CallContext(identity=IdentityClass.USER, method=Method.LOGIN, user_id="bob")
        resp = host.call(ctx, {"email": "bob@x.com", "password": "longenough1"})
        assert resp.status_code == 403

    def test_token_issue_failure_is_500(self, tmp_path):
        host = ActorHost(str(tmp_path / "notoken.db"), TokenIssuer(""))
        ctx = CallContext(identity=IdentityClass.NONE, method=Method.REGISTER)
        assert host.call(ctx, {"name": "bob", "email": "bob@x.com", "password": "longenough1"}).status_code == 200

        resp = host.call(_anon(Method.LOGIN), {"email": "bob@x.com", "password": "longenough1"})
        assert resp.status_code == 500
        assert resp.body == {"message": "Error generating token"}


class TestLoginHandler:
    def _run(self, runtime, body):
        data = InstanceData(context=_anon(Method.LOGIN), body=body)
        user_class.login(data, runtime)
        return data

    def test_token_payload_returned_verbatim(self, fake_runtime):
        payload = {"accessToken": "abc", "refreshToken": "def", "expiresIn": 10}
        runtime = fake_runtime(token=TokenResult(success=True, data=payload))
        data = self._run(runtime, {"email": "bob@x.com", "password": "longenough1"})
        assert data.response.body == payload
        assert ("token", "user", "bob") in runtime.calls

    def test_validation_goes_through_email_lookup(self, fake_runtime):
        runtime = fake_runtime()
        self._run(runtime, {"email": "bob@x.com", "password": "longenough1"})
        assert runtime.calls[0] == ("method_call", "bob@x.com", Method.VALIDATE_PASSWORD, {"password": "longenough1"})

    def test_token_failure_not_retried(self, fake_runtime):
        runtime = fake_runtime(token=TokenResult(success=False, error="signer down"))
        with pytest.raises(errors.UpstreamError) as exc:
            self._run(runtime, {"email": "bob@x.com", "password": "longenough1"})
        assert exc.value.status_code == 500
        # 500-class failures never expose collaborator detail.
        assert "addons" not in exc.value.to_response().body
        assert [c[0] for c in runtime.calls].count("token") == 1

    def test_failed_validation_skips_token(self, fake_runtime):
        runtime = fake_runtime(validate_response=ActorResponse(status_code=401, body={"message": "Invalid password"}))
        with pytest.raises(errors.AuthorizationError):
            self._run(runtime, {"email": "bob@x.com", "password": "nope"})
        assert not any(c[0] == "token" for c in runtime.calls)


class TestValidatePassword:
    @pytest.mark.parametrize(
        "identity,user_id",
        [(IdentityClass.NONE, None), (IdentityClass.ANONYMOUS, None), (IdentityClass.USER, "bob")],
    )
    def test_not_directly_reachable(self, host, register, identity, user_id):
        register()
        ctx = CallContext(identity=identity, method=Method.VALIDATE_PASSWORD, user_id=user_id, instance_id="bob")
        resp = host.call(ctx, {"password": "longenough1"})
        assert resp.status_code == 401
        assert resp.body == {"message": "Unauthorized"}

    def test_internal_caller_gets_user_id(self, host, register):
        register()
        ctx = CallContext(identity=IdentityClass.USER, method=Method.VALIDATE_PASSWORD, user_id="STATIC", instance_id="bob")
        resp = host.call(ctx, {"password": "longenough1"})
        assert resp.status_code == 200
        assert resp.body == {"userId": "bob"}

    def test_comparison_is_verbatim(self, host, register):
        register()
        ctx = CallContext(identity=IdentityClass.USER, method=Method.VALIDATE_PASSWORD, user_id="STATIC", instance_id="bob")
        for attempt in ("LONGENOUGH1", "longenough1 ", "longenough"):
            resp = host.call(ctx, {"password": attempt})
            assert resp.status_code == 401
            assert resp.body == {"message": "Invalid password"}

    def test_validation_does_not_change_version(self, host, register):
        register()
        internal = CallContext(identity=IdentityClass.USER, method=Method.VALIDATE_PASSWORD, user_id="STATIC", instance_id="bob")
        host.call(internal, {"password": "longenough1"})
        state = host.call(CallContext(identity=IdentityClass.DEVELOPER, method=Method.GET_STATE, instance_id="bob"))
        assert state.body["version"] == 0
