"""
useractor/router.py

HTTP surface for the User class.

Every endpoint maps 1:1 onto a User method and goes through ActorHost.call(), so the
authorization gate runs before any handler. Caller identity comes from:
- X-Developer-Key (must match the configured key)
- Authorization: Bearer <token> issued by login
- nothing at all (identity "none")
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, StrictInt

from . import errors
from .runtime import ActorHost
from .types import ActorResponse, CallContext, IdentityClass, Method

router = APIRouter(prefix="/user", tags=["user"])


# ----------------------------
# Caller resolution
# ----------------------------

@dataclass(frozen=True)
class Caller:
    identity: IdentityClass
    user_id: Optional[str] = None


def _host_from_request(request: Request) -> ActorHost:
    return request.app.state.host


def resolve_caller(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_developer_key: Optional[str] = Header(default=None, alias="X-Developer-Key"),
) -> Caller:
    if x_developer_key is not None:
        expected = getattr(request.app.state.config, "developer_key", None)
        if expected and hmac.compare_digest(x_developer_key.encode("utf-8"), expected.encode("utf-8")):
            return Caller(identity=IdentityClass.DEVELOPER)
        raise errors.unauthenticated()

    raw = (authorization or "").strip()
    if not raw:
        return Caller(identity=IdentityClass.NONE)

    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise errors.unauthenticated()

    claims = _host_from_request(request).tokens.verify(token.strip())
    if not claims:
        raise errors.unauthenticated()

    identity = IdentityClass.parse(claims.get("identity"))
    # Developer trust is only granted through the developer key.
    if identity is None or identity == IdentityClass.DEVELOPER:
        raise errors.unauthenticated()

    user_id = claims.get("userId")
    return Caller(identity=identity, user_id=str(user_id) if user_id is not None else None)


# ----------------------------
# Pydantic models
# ----------------------------

class RegisterInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginInput(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ValidatePasswordInput(BaseModel):
    password: Optional[str] = None


class UpdateProfileInput(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class SetStateInput(BaseModel):
    state: Optional[Dict[str, Any]] = None
    version: Optional[StrictInt] = None


def _to_http(resp: ActorResponse) -> Response:
    if resp.status_code == 204:
        return Response(status_code=204, headers=resp.headers)
    return JSONResponse(status_code=resp.status_code, content=resp.body, headers=resp.headers)


def _dispatch(
    request: Request,
    caller: Caller,
    method: Method,
    body: Dict[str, Any],
    instance_id: Optional[str] = None,
) -> Response:
    ctx = CallContext(
        identity=caller.identity,
        method=method,
        user_id=caller.user_id,
        instance_id=instance_id,
    )
    return _to_http(_host_from_request(request).call(ctx, body))


# ----------------------------
# Static methods
# ----------------------------

@router.post("/register")
def register(
    request: Request,
    payload: RegisterInput = Body(...),
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.REGISTER, payload.model_dump(exclude_none=True))


@router.post("/login")
def login(
    request: Request,
    payload: LoginInput = Body(...),
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.LOGIN, payload.model_dump(exclude_none=True))


# ----------------------------
# Instance methods
# ----------------------------

@router.post("/{instance_id}/validatePassword")
def validate_password(
    request: Request,
    instance_id: str,
    payload: ValidatePasswordInput = Body(...),
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.VALIDATE_PASSWORD, payload.model_dump(exclude_none=True), instance_id)


@router.post("/{instance_id}/updateProfile")
def update_profile(
    request: Request,
    instance_id: str,
    payload: UpdateProfileInput = Body(...),
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.UPDATE_PROFILE, payload.model_dump(exclude_none=True), instance_id)


@router.get("/{instance_id}/state")
def get_state(
    request: Request,
    instance_id: str,
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.GET_STATE, {}, instance_id)


@router.put("/{instance_id}/state")
def set_state(
    request: Request,
    instance_id: str,
    payload: SetStateInput = Body(...),
    caller: Caller = Depends(resolve_caller),
) -> Response:
    return _dispatch(request, caller, Method.SET_STATE, payload.model_dump(), instance_id)
