"""
useractor/user.py

The User class: one instance per registered user, keyed by email.

Every handler takes the per-call envelope (InstanceData) plus the injected Runtime,
raises a UserActorError subclass on rejection, and otherwise sets `data.response`.
State changes go through `data.replace_state()`; committing (and the version bump)
is the host's job.
"""

from __future__ import annotations

import hmac
import logging
import re
from typing import Any, Callable, Dict, Optional

from . import errors
from .ports import DUPLICATE_LOOKUP_KEY, LookupKey, Runtime
from .types import STATIC_CALLER, ActorResponse, InstanceData, Method

logger = logging.getLogger(__name__)

CLASS_ID = "User"
EMAIL_LOOKUP = "email"
MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}$"
)


# ----------------------------
# Input helpers
# ----------------------------

def is_email(value: Any) -> bool:
    if not isinstance(value, str) or len(value) > 254:
        return False
    return bool(_EMAIL_RE.match(value))


def is_strong_password(value: Any) -> bool:
    return isinstance(value, str) and len(value) >= MIN_PASSWORD_LENGTH


def _str_field(body: Dict[str, Any], name: str) -> Optional[str]:
    v = body.get(name)
    return v if isinstance(v, str) else None


def _passwords_match(supplied: Optional[str], stored: Any) -> bool:
    if supplied is None or not isinstance(stored, str):
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


def get_instance_id(body: Dict[str, Any]) -> Optional[str]:
    """Instance id is the registration name."""
    return _str_field(body or {}, "name")


# ----------------------------
# Instance lifecycle
# ----------------------------

def init(data: InstanceData, runtime: Runtime) -> None:
    payload = dict(data.body)
    data.replace_state({"public": {}, "private": payload})
    email = payload.get("email")
    if isinstance(email, str):
        data.lookup_keys[EMAIL_LOOKUP] = email
    data.response = ActorResponse(status_code=200, body={"userId": data.context.instance_id})


# ----------------------------
# Registrar (static)
# ----------------------------

def register(data: InstanceData, runtime: Runtime) -> None:
    body = data.body
    name = _str_field(body, "name")
    email = _str_field(body, "email")
    password = body.get("password")

    if not is_email(email):
        raise errors.invalid_email()

    if not name or not name.strip() or name == STATIC_CALLER or "/" in name:
        raise errors.invalid_name()

    # Advisory pre-check; creation below is the source of truth for uniqueness.
    existing = runtime.get_instance(lookup_key=LookupKey(EMAIL_LOOKUP, email))
    if existing.status_code == 200:
        raise errors.duplicate_email()

    if not is_strong_password(password):
        raise errors.weak_password()

    created = runtime.get_instance(body=dict(body))
    if created.status_code == 409 and _body_code(created) == DUPLICATE_LOOKUP_KEY:
        logger.info("register lost creation race for an existing email")
        raise errors.duplicate_email()
    if created.status_code != 200:
        logger.warning("register: instance creation failed status=%s", created.status_code)
        raise errors.creation_failed(detail={"statusCode": created.status_code, "body": created.body})

    data.response = ActorResponse(status_code=200, body="Registration OK")


def _body_code(resp: ActorResponse) -> Optional[str]:
    if isinstance(resp.body, dict):
        return resp.body.get("code")
    return None


# ----------------------------
# Credential verifier
# ----------------------------

def login(data: InstanceData, runtime: Runtime) -> None:
    email = _str_field(data.body, "email")
    password = _str_field(data.body, "password")

    # Unknown email and wrong password must look identical to the caller.
    if email is None or password is None:
        raise errors.invalid_credentials()

    result = runtime.method_call(
        lookup_key=LookupKey(EMAIL_LOOKUP, email),
        method=Method.VALIDATE_PASSWORD,
        body={"password": password},
    )
    if result.status_code != 200:
        raise errors.invalid_credentials()

    user_id = result.body.get("userId") if isinstance(result.body, dict) else None
    if not user_id:
        raise errors.invalid_credentials()

    token = runtime.generate_custom_token(identity="user", user_id=str(user_id))
    if token.success is not True:
        logger.warning("login: token issuance failed for user_id=%s", user_id)
        raise errors.token_issue_failed(detail=token.error)

    data.response = ActorResponse(status_code=200, body=token.data)


def validate_password(data: InstanceData, runtime: Runtime) -> None:
    supplied = _str_field(data.body, "password")
    if not _passwords_match(supplied, data.private.get("password")):
        raise errors.invalid_credentials("Invalid password")

    data.response = ActorResponse(status_code=200, body={"userId": data.context.instance_id})


# ----------------------------
# Versioned state accessor
# ----------------------------

def update_profile(data: InstanceData, runtime: Runtime) -> None:
    """
    Merge supplied name/email/password into private state.

    Validation happens on the merged result before anything is changed, so a rejected
    call leaves the instance untouched. The version bump comes from the host's commit.
    """
    body = data.body
    private = data.private
    merged = dict(private)
    for field_name in ("name", "email", "password"):
        if body.get(field_name) is not None:
            merged[field_name] = body[field_name]

    if not is_strong_password(merged.get("password")):
        raise errors.weak_password()

    new_email = merged.get("email")
    if new_email != private.get("email"):
        if not is_email(new_email):
            raise errors.invalid_email()
        owner = runtime.get_instance(lookup_key=LookupKey(EMAIL_LOOKUP, new_email))
        if owner.status_code == 200:
            raise errors.duplicate_email(status_code=409)
        data.lookup_keys[EMAIL_LOOKUP] = new_email

    state = dict(data.state)
    state["private"] = merged
    data.replace_state(state)
    data.response = ActorResponse(status_code=200, body="OK")


def get_state(data: InstanceData, runtime: Runtime) -> None:
    data.response = ActorResponse(
        status_code=200,
        body={"state": data.state, "version": data.version},
        headers={"X-State-Version": str(data.version)},
    )


def set_state(data: InstanceData, runtime: Runtime) -> None:
    body = data.body or {}
    state = body.get("state")
    version = body.get("version")

    # bool is an int subclass; True must not match version 1.
    if not isinstance(version, int) or isinstance(version, bool) or version != data.version:
        raise errors.version_conflict(version, data.version)

    if not isinstance(state, dict):
        raise errors.ValidationError("state must be an object", code="INVALID_STATE")

    new_private = state.get("private") or {}
    new_email = new_private.get("email") if isinstance(new_private, dict) else None
    if not isinstance(new_email, str):
        # No email left in state: the instance must no longer be reachable by one.
        data.lookup_keys[EMAIL_LOOKUP] = None
    elif new_email != data.private.get("email"):
        if not is_email(new_email):
            raise errors.invalid_email()
        data.lookup_keys[EMAIL_LOOKUP] = new_email

    data.replace_state(state)
    data.response = ActorResponse(status_code=204)


Handler = Callable[[InstanceData, Runtime], None]

HANDLERS: Dict[Method, Handler] = {
    Method.INIT: init,
    Method.REGISTER: register,
    Method.LOGIN: login,
    Method.VALIDATE_PASSWORD: validate_password,
    Method.UPDATE_PROFILE: update_profile,
    Method.GET_STATE: get_state,
    Method.SET_STATE: set_state,
}
