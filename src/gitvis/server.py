"""gitvis HTTP server: repository stats, pages, full loads and event streams."""

import argparse
import sys
from typing import Any, AsyncIterator, Dict, Generator, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import BaseModel

from gitvis.cancellation import CancellationToken
from gitvis.config import DEFAULTS, load_config
from gitvis.errors import ConfigurationError, ProviderError, ValidationError
from gitvis.nodes.history_provider import HistoryProvider, load_history_provider
from gitvis.nodes.repository_source import clone_repository, require_repository, validate_repository
from gitvis.nodes.size_classifier import classify
from gitvis.nodes.streaming import iter_stream_events
from gitvis.sse import encode_event
from gitvis.types.events import StreamEvent

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class PathRequest(BaseModel):
    path: str = ""


class CloneRequest(BaseModel):
    url: str = ""
    shallow: bool = True


def _ok(data: BaseModel) -> Dict[str, Any]:
    return {"success": True, "data": data.model_dump(mode="json", by_alias=True)}


async def _event_source(
    request: Request, events: Generator[StreamEvent, None, None], token: CancellationToken
) -> AsyncIterator[str]:
    """Pull events in a worker thread, stop producing once the client is gone.

    The producer is cancelled and closed however the response ends, so a
    dropped connection never leaves a ``git log`` running behind it.
    """
    try:
        while True:
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling stream")
                break
            event = await run_in_threadpool(next, events, None)
            if event is None:
                break
            yield encode_event(event)
    finally:
        token.cancel()
        events.close()


def create_app(provider: Optional[HistoryProvider] = None, config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Create the gitvis application around a History Provider."""
    provider = provider or load_history_provider()
    config = {**DEFAULTS, **(config or {})}

    app = FastAPI(title="gitvis", version="0.1.0")
    app.state.provider = provider
    app.state.config = config

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ProviderError)
    async def _provider_error(request: Request, exc: ProviderError) -> JSONResponse:
        logger.error(f"{request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/api/repository/validate")
    def validate(path: str = Query(default="")) -> Dict[str, bool]:
        return {"valid": validate_repository(path)}

    @app.post("/api/repository/stats")
    def stats(req: PathRequest = Body(...)) -> Dict[str, Any]:
        path = require_repository(req.path)
        return _ok(classify(provider.get_total_count(path)))

    @app.post("/api/repository/metadata")
    def metadata(req: PathRequest = Body(...)) -> Dict[str, Any]:
        path = require_repository(req.path)
        return _ok(provider.get_metadata(path))

    @app.post("/api/repository/load")
    def load(req: PathRequest = Body(...)) -> Dict[str, Any]:
        path = require_repository(req.path)
        return _ok(provider.get_repository(path))

    @app.post("/api/repository/stream")
    async def stream(
        request: Request,
        req: PathRequest = Body(...),
        chunk_size: int = Query(default=config["chunk_size"], alias="chunkSize", gt=0),
        first_parent: bool = Query(default=False, alias="firstParent"),
    ) -> StreamingResponse:
        path = require_repository(req.path)
        logger.info(f"Opening stream for {path} (chunkSize={chunk_size}, firstParent={first_parent})")
        token = CancellationToken()
        events = iter_stream_events(provider, path, chunk_size=chunk_size, first_parent=first_parent, token=token)
        return StreamingResponse(
            _event_source(request, events, token),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/api/repository/commits")
    def commits(
        req: PathRequest = Body(...),
        max_count: int = Query(default=config["page_size"], alias="maxCount", gt=0),
        skip: int = Query(default=0, ge=0),
        first_parent: bool = Query(default=False, alias="firstParent"),
    ) -> Dict[str, Any]:
        path = require_repository(req.path)
        return _ok(provider.get_page(path, max_count=max_count, skip=skip, first_parent=first_parent))

    @app.get("/api/commit/{commit_hash}")
    def commit_details(commit_hash: str, path: str = Query(default="")) -> Dict[str, Any]:
        repo_path = require_repository(path)
        commit = provider.get_commit(repo_path, commit_hash)
        if commit is None:
            raise HTTPException(status_code=404, detail="Commit not found")
        return {"commit": commit.to_wire()}

    @app.post("/api/repository/clone")
    def clone(req: CloneRequest = Body(...)) -> Dict[str, Any]:
        if not req.url:
            raise ValidationError("URL is required")
        repo_path = clone_repository(req.url, shallow=req.shallow, depth=config["clone_depth"])
        return _ok(provider.get_repository(repo_path))

    return app


def main():
    parser = argparse.ArgumentParser(description="Serve git histories as streamable commit graphs")
    parser.add_argument("--host", type=str, help="Interface to bind", default=None)
    parser.add_argument("--port", type=int, help="Port to listen on", default=None)
    parser.add_argument("--env-file", type=str, help="Path to a .env file", default=None)
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    try:
        config = load_config(args.env_file)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    if not args.verbose:
        logger.remove()
        logger.add(sys.stderr, level=config["log_level"])

    host = args.host or config["host"]
    port = args.port or config["port"]

    import uvicorn

    logger.info(f"Starting gitvis on http://{host}:{port}")
    uvicorn.run(create_app(config=config), host=host, port=port)


if __name__ == "__main__":
    main()
