"""Asynchronous HTTP client for the gitvis server."""

from typing import Any, AsyncIterator, Dict, Optional

import httpx
from loguru import logger

from gitvis.errors import ProviderError, StreamUnavailableError, ValidationError
from gitvis.models.base import Commit
from gitvis.models.repository import PaginatedCommits, RepoStats, Repository, RepositoryMetadata
from gitvis.sse import EventStreamDecoder
from gitvis.types.events import StreamEvent, is_terminal


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail")
        if detail:
            return detail if isinstance(detail, str) else str(detail)
    return f"HTTP {response.status_code}"


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = _error_message(response)
    if 400 <= response.status_code < 500:
        raise ValidationError(message)
    raise ProviderError(message)


class GitVisClient:
    """Talks to the gitvis HTTP API and decodes repository streams."""

    def __init__(self, base_url: str = "http://127.0.0.1:8000", http: Optional[httpx.AsyncClient] = None):
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(30.0, read=None))

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _post(self, url: str, body: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.http.post(url, json=body, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {url} failed: {e}") from e
        _raise_for_status(response)
        return response.json()["data"]

    async def validate(self, path: str) -> bool:
        try:
            response = await self.http.get("/api/repository/validate", params={"path": path})
        except httpx.HTTPError as e:
            raise ProviderError(f"Validation request failed: {e}") from e
        _raise_for_status(response)
        return bool(response.json().get("valid"))

    async def get_stats(self, path: str) -> RepoStats:
        return RepoStats.model_validate(await self._post("/api/repository/stats", {"path": path}))

    async def get_metadata(self, path: str) -> RepositoryMetadata:
        return RepositoryMetadata.model_validate(await self._post("/api/repository/metadata", {"path": path}))

    async def load_repository(self, path: str) -> Repository:
        return Repository.model_validate(await self._post("/api/repository/load", {"path": path}))

    async def get_commits_page(
        self, path: str, skip: int = 0, max_count: int = 500, first_parent: bool = False
    ) -> PaginatedCommits:
        params = {"skip": skip, "maxCount": max_count, "firstParent": str(first_parent).lower()}
        return PaginatedCommits.model_validate(await self._post("/api/repository/commits", {"path": path}, params))

    async def clone_repository(self, url: str, shallow: bool = True) -> Repository:
        return Repository.model_validate(
            await self._post("/api/repository/clone", {"url": url, "shallow": shallow})
        )

    async def get_commit(self, path: str, commit_hash: str) -> Optional[Commit]:
        try:
            response = await self.http.get(f"/api/commit/{commit_hash}", params={"path": path})
        except httpx.HTTPError as e:
            raise ProviderError(f"Commit request failed: {e}") from e
        if response.status_code == 404:
            return None
        _raise_for_status(response)
        return Commit.model_validate(response.json()["commit"])

    async def stream_repository(
        self, path: str, chunk_size: int = 1000, first_parent: bool = False
    ) -> AsyncIterator[StreamEvent]:
        """Yield decoded events until the terminal one.

        Raises StreamUnavailableError when the stream cannot be opened and
        ValidationError when the server rejects the request.
        """
        params = {"chunkSize": chunk_size, "firstParent": str(first_parent).lower()}
        decoder = EventStreamDecoder()
        try:
            async with self.http.stream(
                "POST", "/api/repository/stream", json={"path": path}, params=params
            ) as response:
                if not response.is_success:
                    await response.aread()
                    if 400 <= response.status_code < 500:
                        raise ValidationError(_error_message(response))
                    raise StreamUnavailableError(_error_message(response))

                async for line in response.aiter_lines():
                    event = decoder.feed(line)
                    if event is None:
                        continue
                    yield event
                    if is_terminal(event):
                        return
                event = decoder.feed("")
                if event is not None:
                    yield event
        except httpx.ConnectError as e:
            raise StreamUnavailableError(f"Could not open stream: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Stream for {path} interrupted: {e}")
            raise ProviderError(f"Stream interrupted: {e}") from e


def load_client(base_url: str) -> GitVisClient:
    """Factory function to create a client for a gitvis server."""
    return GitVisClient(base_url=base_url)
