import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from intakelog.errors import ConsumptionError
from intakelog.mcp_server import router as mcp_router
from intakelog.repo_events import build_repo
from intakelog.service_events import EventService
from intakelog.settings import settings
from intakelog.tools import execute_tool, get_tool_definitions

logger = logging.getLogger(__name__)


class ToolCall(BaseModel):
    tool: Optional[str] = None
    input: Optional[Any] = None


def create_app(svc: Optional[EventService] = None) -> FastAPI:
    """Build the app around one `EventService`.

    Without an explicit service the store is chosen by `build_repo()` when
    the app starts, not on import. Handlers only see the service, so tests
    can pass in a service over a `MemoryEventRepo`.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.svc is None:
            app.state.svc = EventService(await run_in_threadpool(build_repo))
        yield

    app = FastAPI(title="Intake Log", lifespan=lifespan)
    app.state.svc = svc

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(ConsumptionError)
    async def consumption_error(request: Request, exc: ConsumptionError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Malformed request body"})

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "OK"

    @app.get("/health")
    def health():
        try:
            app.state.svc.health_check()
            return {"ok": True}
        except ConsumptionError as e:
            raise HTTPException(status_code=500, detail=f"Store health check failed: {e}")

    @app.get("/tools")
    def list_tools():
        return get_tool_definitions()

    @app.post("/")
    def call(payload: ToolCall):
        return execute_tool(app.state.svc, payload.tool, payload.input)

    @app.post("/tools/{name}")
    def call_named(name: str, payload: Optional[Dict[str, Any]] = Body(None)):
        return execute_tool(app.state.svc, name, payload)

    app.include_router(mcp_router)
    return app


app = create_app()


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("HTTP server on http://%s:%s (store=%s)", settings.host, settings.port, settings.store_backend)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
