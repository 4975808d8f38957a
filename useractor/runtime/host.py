"""
runtime/host.py

Local actor host for the User class.

Responsibilities:
- consult the authorization gate before every dispatch (including internal calls)
- serialize methods per instance (single writer per instance, instances in parallel)
- load state, run the handler, commit dirty state with a version compare-and-swap
- convert UserActorError into ActorResponse at the boundary

It also implements the Runtime port the User methods call back into.
"""

from __future__ import annotations

import copy
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from .. import errors
from .. import user as user_class
from ..gate import authorize
from ..ports import DUPLICATE_INSTANCE, DUPLICATE_LOOKUP_KEY, LookupKey, TokenResult
from ..types import STATIC_CALLER, ActorResponse, CallContext, IdentityClass, InstanceData, Method, empty_state
from . import db as adb
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)


@dataclass
class _InstanceLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class ActorHost:
    def __init__(self, db_path: str, tokens: TokenIssuer, *, class_id: str = user_class.CLASS_ID) -> None:
        self.db_path = db_path
        self.tokens = tokens
        self.class_id = class_id
        # Only instances with a call in flight have an entry.
        self._locks: Dict[str, _InstanceLock] = {}
        self._locks_guard = threading.Lock()

    # ----------------------------
    # Plumbing
    # ----------------------------

    @contextmanager
    def _conn(self) -> Iterator[Any]:
        try:
            conn = adb.connect(self.db_path)
        except sqlite3.OperationalError as exc:
            logger.warning("storage unavailable: %s", exc)
            raise errors.storage_unavailable() from exc
        try:
            yield conn
        except sqlite3.OperationalError as exc:
            logger.warning("storage unavailable: %s", exc)
            raise errors.storage_unavailable() from exc
        finally:
            conn.close()

    @contextmanager
    def _instance_lock(self, instance_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(instance_id)
            if entry is None:
                entry = self._locks[instance_id] = _InstanceLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if not entry.holders:
                    del self._locks[instance_id]

    def _internal_context(self, method: Method, instance_id: Optional[str]) -> CallContext:
        return CallContext(
            identity=IdentityClass.USER,
            method=method,
            user_id=STATIC_CALLER,
            instance_id=instance_id,
        )

    # ----------------------------
    # Entry point
    # ----------------------------

    def call(self, ctx: CallContext, body: Optional[Dict[str, Any]] = None) -> ActorResponse:
        """
        Authorize and dispatch one method invocation.
        """
        try:
            return self._dispatch(ctx, body)
        except errors.UserActorError as exc:
            return exc.to_response()

    def _dispatch(self, ctx: CallContext, body: Optional[Dict[str, Any]]) -> ActorResponse:
        decision = authorize(ctx)
        if not decision.allow:
            logger.info(
                "denied method=%s identity=%s instance=%s reason=%s",
                getattr(ctx.method, "value", ctx.method),
                getattr(ctx.identity, "value", ctx.identity),
                ctx.instance_id,
                decision.reason,
            )
            err = errors.forbidden() if decision.status_code == 403 else errors.unauthenticated()
            return err.to_response()

        method = ctx.method
        if method is None:
            # Only a developer gets here with an unknown method name.
            return errors.NotFoundError("Unknown method", code="UNKNOWN_METHOD").to_response()

        if method == Method.INIT:
            return self._create(ctx, body or {})

        if method.is_static:
            data = InstanceData(context=ctx, body=dict(body or {}))
            return self._run(data)

        if not ctx.instance_id:
            return errors.NotFoundError("Instance not found").to_response()

        with self._instance_lock(ctx.instance_id):
            with self._conn() as conn:
                loaded = adb.load_instance(conn, self.class_id, ctx.instance_id)
            if loaded is None:
                return errors.NotFoundError("Instance not found").to_response()
            state, version = loaded
            data = InstanceData(context=ctx, body=dict(body or {}), state=state, version=version)
            resp = self._run(data)
            if resp.ok and data.dirty:
                return self._commit(data, resp)
            return resp

    def _run(self, data: InstanceData) -> ActorResponse:
        handler = user_class.HANDLERS[data.context.method]
        try:
            handler(data, self)
        except errors.UserActorError as exc:
            return exc.to_response()
        if data.response is None:
            return ActorResponse(status_code=204)
        return data.response

    def _commit(self, data: InstanceData, resp: ActorResponse) -> ActorResponse:
        instance_id = data.context.instance_id
        try:
            with self._conn() as conn:
                adb.commit_state(
                    conn,
                    class_id=self.class_id,
                    instance_id=instance_id,
                    state=data.state,
                    expected_version=data.version,
                    lookup_keys=data.lookup_keys,
                )
        except adb.StaleVersion as exc:
            # Another process wrote between our load and commit.
            return errors.version_conflict(data.version, exc.current or 0).to_response()
        except adb.DuplicateLookupKey as exc:
            logger.info("commit rejected: lookup key %s taken (instance=%s)", exc.key_name, instance_id)
            if exc.key_name == user_class.EMAIL_LOOKUP:
                return errors.duplicate_email(status_code=409).to_response()
            return errors.ConflictError(str(exc), code=DUPLICATE_LOOKUP_KEY).to_response()
        return resp

    def _create(self, ctx: CallContext, body: Dict[str, Any]) -> ActorResponse:
        instance_id = ctx.instance_id
        if not instance_id:
            return ActorResponse(status_code=400, body={"message": "Cannot derive instance id"})

        with self._instance_lock(instance_id):
            data = InstanceData(context=ctx, body=dict(body), state=empty_state(), version=0)
            resp = self._run(data)
            if not resp.ok:
                return resp
            try:
                with self._conn() as conn:
                    adb.create_instance(
                        conn,
                        class_id=self.class_id,
                        instance_id=instance_id,
                        state=data.state,
                        lookup_keys=data.lookup_keys,
                    )
            except adb.DuplicateInstance:
                return ActorResponse(
                    status_code=409,
                    body={"message": "Instance already exists", "code": DUPLICATE_INSTANCE},
                )
            except adb.DuplicateLookupKey as exc:
                return ActorResponse(
                    status_code=409,
                    body={"message": f"Lookup key '{exc.key_name}' is already taken", "code": DUPLICATE_LOOKUP_KEY},
                )
        logger.info("created instance class=%s id=%s", self.class_id, instance_id)
        return resp

    # ----------------------------
    # Runtime port
    # ----------------------------

    def get_instance(
        self,
        *,
        lookup_key: Optional[LookupKey] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> ActorResponse:
        if lookup_key is not None:
            with self._conn() as conn:
                instance_id = adb.resolve_lookup_key(conn, self.class_id, lookup_key.name, lookup_key.value)
            if instance_id is None:
                return ActorResponse(status_code=404, body={"message": "Instance not found"})
            return ActorResponse(status_code=200, body={"instanceId": instance_id})

        payload = copy.deepcopy(body or {})
        instance_id = user_class.get_instance_id(payload)
        return self.call(self._internal_context(Method.INIT, instance_id), payload)

    def method_call(self, *, lookup_key: LookupKey, method: Method, body: Dict[str, Any]) -> ActorResponse:
        resolved = self.get_instance(lookup_key=lookup_key)
        if resolved.status_code != 200:
            return resolved
        instance_id = resolved.body["instanceId"]
        return self.call(self._internal_context(method, instance_id), body)

    def generate_custom_token(self, *, identity: str, user_id: str) -> TokenResult:
        return self.tokens.issue(identity=identity, user_id=user_id)
