from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import HostConfig, load_config
from .errors import UserActorError
from .router import router as user_router
from .runtime import ActorHost, TokenIssuer


# ----------------------------
# App factory
# ----------------------------

def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(config: Optional[HostConfig] = None) -> FastAPI:
    config = config or load_config()
    configure_logging(config.log_level)

    app = FastAPI(title="user-actor")
    app.state.config = config
    app.state.host = ActorHost(
        db_path=config.db_path,
        tokens=TokenIssuer(config.token_secret, ttl_seconds=config.token_ttl_seconds),
    )

    @app.exception_handler(UserActorError)
    async def _user_actor_error(request: Request, exc: UserActorError) -> JSONResponse:
        resp = exc.to_response()
        return JSONResponse(status_code=resp.status_code, content=resp.body, headers=resp.headers)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "user-actor"}

    app.include_router(user_router)
    return app


app = create_app()
