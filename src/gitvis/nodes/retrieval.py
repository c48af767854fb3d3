"""
Retrieval state machine for the client side of a repository load.

A ``RepositoryLoader`` owns one ``RepositoryView`` and at most one active
``RetrievalSession``. Every load first asks for the repository size; large
histories wait for the caller to pick a mode, small ones are loaded in one
request. Streams are merged event by event in arrival order, and any new
load cancels the previous session before touching the view.
"""

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Protocol

from loguru import logger

from gitvis.cancellation import CancellationToken
from gitvis.errors import LoadCancelled, ProviderError, StreamUnavailableError, ValidationError
from gitvis.models.base import Commit
from gitvis.models.repository import PaginatedCommits, RepoStats, Repository, RepositoryMetadata, RepositoryView
from gitvis.nodes.repository_source import validate_git_url
from gitvis.types.events import CommitsEvent, CompleteEvent, ErrorEvent, MetadataEvent, StreamEvent
from gitvis.types.state import (
    BUSY_STATES,
    INDETERMINATE_PROGRESS,
    SETTLED_STATES,
    LoadMode,
    LoadProgress,
    RetrievalState,
)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_PAGE_SIZE = 1000


class RepositoryClient(Protocol):
    async def get_stats(self, path: str) -> RepoStats: ...

    async def get_metadata(self, path: str) -> RepositoryMetadata: ...

    async def load_repository(self, path: str) -> Repository: ...

    async def get_commits_page(
        self, path: str, skip: int = 0, max_count: int = 500, first_parent: bool = False
    ) -> PaginatedCommits: ...

    async def clone_repository(self, url: str, shallow: bool = True) -> Repository: ...

    def stream_repository(
        self, path: str, chunk_size: int = 1000, first_parent: bool = False
    ) -> AsyncIterator[StreamEvent]: ...


@dataclass
class RetrievalSession:
    """One in-flight load, from the size check until it settles."""

    path: str
    token: CancellationToken
    mode: Optional[LoadMode] = None
    state: RetrievalState = RetrievalState.CHECKING_SIZE
    buffer: List[Commit] = field(default_factory=list)
    progress: int = INDETERMINATE_PROGRESS
    error: Optional[str] = None


def apply_stream_event(
    session: RetrievalSession, view: Optional[RepositoryView], event: StreamEvent
) -> Optional[RepositoryView]:
    """Advance a streaming session by one event and return the resulting view.

    Metadata starts a fresh view; commit batches are concatenated as they
    arrive; ``complete`` settles the view as fully loaded; ``error`` keeps
    whatever was merged and records the message.
    """
    if isinstance(event, MetadataEvent):
        session.buffer.clear()
        session.state = RetrievalState.STREAMING
        return RepositoryView.from_metadata(event.metadata)

    if isinstance(event, CommitsEvent):
        if view is None:
            raise ProviderError("Received commits before repository metadata")
        chunk = event.chunk
        session.state = RetrievalState.MERGING
        session.buffer.extend(chunk.commits)
        view.append(chunk.commits, total=chunk.total)
        session.progress = chunk.progress
        session.state = RetrievalState.STREAMING
        return view

    if isinstance(event, CompleteEvent):
        if view is not None:
            view.mark_complete()
        session.progress = 100
        session.state = RetrievalState.DONE
        return view

    if isinstance(event, ErrorEvent):
        session.error = event.message
        session.state = RetrievalState.FAILED
        return view

    raise ProviderError(f"Unexpected stream event: {event!r}")


class RepositoryLoader:
    """Client-side owner of a repository view and its retrieval lifecycle."""

    def __init__(
        self,
        client: RepositoryClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client = client
        self.chunk_size = chunk_size
        self.page_size = page_size

        self.view: Optional[RepositoryView] = None
        self.stats: Optional[RepoStats] = None
        self.mode: LoadMode = LoadMode.FULL
        self.pending_path: Optional[str] = None
        self.state = RetrievalState.IDLE
        self.progress = INDETERMINATE_PROGRESS
        self.message = ""
        self.error: Optional[str] = None

        self._session: Optional[RetrievalSession] = None
        self._listeners: List[Callable[[LoadProgress], None]] = []

    # -- observation -----------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def session(self) -> Optional[RetrievalSession]:
        return self._session

    def subscribe(self, listener: Callable[[LoadProgress], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def snapshot(self) -> LoadProgress:
        """Current state as a ``LoadProgress`` value."""
        return LoadProgress(
            state=self.state,
            progress=self.progress,
            message=self.message,
            loaded=self.view.loaded_count if self.view else 0,
            total=self.view.total_count if self.view else 0,
            error=self.error or "",
        )

    def _set(self, state: RetrievalState, progress: Optional[int] = None, message: Optional[str] = None) -> None:
        """Record a transition and publish a snapshot to every listener."""
        self.state = state
        if progress is not None:
            self.progress = progress
        if message is not None:
            self.message = message
        if self._session is not None:
            self._session.state = state
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # -- session bookkeeping -----------------------------------------------

    def _begin(self, path: str, token: Optional[CancellationToken]) -> RetrievalSession:
        """Cancel any running session and start a fresh one for ``path``."""
        self.cancel()
        session = RetrievalSession(path=path, token=token or CancellationToken())
        self._session = session
        self.error = None
        return session

    def _ensure_current(self, session: RetrievalSession) -> None:
        session.token.raise_if_cancelled()
        if session is not self._session:
            raise LoadCancelled("Session superseded or cancelled")

    def _abandon(self, session: RetrievalSession) -> None:
        session.buffer.clear()
        if session is self._session:
            self._session = None
            self.pending_path = None
            self._set(RetrievalState.IDLE, INDETERMINATE_PROGRESS, "")

    def _fail(self, session: RetrievalSession, message: str) -> None:
        if session is not self._session:
            return
        logger.error(f"Loading {session.path} failed: {message}")
        session.error = message
        self.error = message
        self._session = None
        self._set(RetrievalState.FAILED, INDETERMINATE_PROGRESS, "")

    def _finish(self, session: RetrievalSession) -> None:
        self._session = None
        self._set(RetrievalState.DONE, 100, "")

    def _reject(self, session: RetrievalSession, error: ValidationError) -> None:
        if session is self._session:
            self._session = None
            self.error = str(error)
            self._set(RetrievalState.IDLE, INDETERMINATE_PROGRESS, "")

    async def _execute(self, session: RetrievalSession, work: Awaitable[None]) -> None:
        """Run one session's work as a task that cancelling its token aborts."""
        task = asyncio.ensure_future(work)
        session.token.on_cancel(task.cancel)
        try:
            await task
        except asyncio.CancelledError:
            if not session.token.cancelled:
                # The caller was cancelled, not the session.
                session.token.cancel()
                self._abandon(session)
                raise
            self._abandon(session)
        except LoadCancelled:
            self._abandon(session)
        except ValidationError as e:
            self._reject(session, e)
            raise
        except ProviderError as e:
            self._fail(session, str(e))

    # -- operations --------------------------------------------------------

    def cancel(self) -> None:
        """Stop the active session, if any. Merged commits stay in the view."""
        session = self._session
        if session is None:
            if self.state is RetrievalState.AWAITING_CONFIRMATION:
                self.pending_path = None
                self._set(RetrievalState.IDLE, INDETERMINATE_PROGRESS, "")
            return
        logger.info(f"Cancelling retrieval of {session.path}")
        session.token.cancel()
        self._abandon(session)

    def dismiss_warning(self) -> None:
        """Drop a pending large-repository confirmation."""
        if self.state is RetrievalState.AWAITING_CONFIRMATION:
            self.cancel()

    def reset(self) -> None:
        self.cancel()
        self.view = None
        self.stats = None
        self.error = None
        self._set(RetrievalState.IDLE, INDETERMINATE_PROGRESS, "")

    async def start_load(self, path: str, token: Optional[CancellationToken] = None) -> None:
        """Check the repository size and load it, or wait for a mode choice."""
        if not path or not path.strip():
            raise ValidationError("Repository path is required")

        session = self._begin(path, token)
        self._set(RetrievalState.CHECKING_SIZE, INDETERMINATE_PROGRESS, "Checking repository size...")
        await self._execute(session, self._check_and_load(session))

    async def _check_and_load(self, session: RetrievalSession) -> None:
        stats = await self.client.get_stats(session.path)
        self._ensure_current(session)
        self.stats = stats

        if stats.is_large_repo:
            logger.info(
                f"{session.path} has {stats.total_commits} commits, "
                f"recommending {stats.recommended_mode.value} mode"
            )
            self.pending_path = session.path
            self._set(RetrievalState.AWAITING_CONFIRMATION, INDETERMINATE_PROGRESS, "")
            return

        await self._run(session, LoadMode.FULL)

    async def confirm_mode(self, mode: LoadMode) -> None:
        """Resume a pending large-repository load with the chosen mode."""
        session = self._session
        if self.state is not RetrievalState.AWAITING_CONFIRMATION or session is None:
            logger.warning("No pending repository load to confirm")
            return

        try:
            mode = LoadMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown load mode {mode!r}") from e

        self.pending_path = None
        await self._execute(session, self._run(session, mode))

    async def load_more(self) -> None:
        """Fetch the next contiguous page after an initial load settled."""
        view = self.view
        if view is None or self.is_loading or self.state not in SETTLED_STATES:
            return
        if not view.has_more:
            return

        session = self._begin(view.path, None)
        session.mode = self.mode
        self._set(RetrievalState.LOADING_MORE, INDETERMINATE_PROGRESS, "Loading more commits...")
        await self._execute(session, self._next_page(session, view))

    async def _next_page(self, session: RetrievalSession, view: RepositoryView) -> None:
        page = await self.client.get_commits_page(
            view.path,
            skip=view.loaded_count,
            max_count=self.page_size,
            first_parent=self.mode is LoadMode.SIMPLIFIED,
        )
        self._ensure_current(session)
        view.append(page.commits, total=page.total)
        logger.info(f"Loaded {len(page.commits)} more commits ({view.loaded_count}/{view.total_count})")
        self._finish(session)

    async def clone_repo(self, url: str, shallow: bool = True, token: Optional[CancellationToken] = None) -> None:
        """Clone a remote repository, then load it like a local one."""
        if not url or not validate_git_url(url):
            raise ValidationError("Invalid git repository URL")

        session = self._begin(url, token)
        message = "Cloning repository (shallow)..." if shallow else "Cloning full repository..."
        self._set(RetrievalState.CLONING, INDETERMINATE_PROGRESS, message)
        await self._execute(session, self._clone(session, url, shallow))

    async def _clone(self, session: RetrievalSession, url: str, shallow: bool) -> None:
        repository = await self.client.clone_repository(url, shallow=shallow)
        self._ensure_current(session)
        session.path = repository.path

        stats = await self.client.get_stats(repository.path)
        self._ensure_current(session)
        self.stats = stats

        if stats.is_large_repo:
            self.pending_path = repository.path
            self._set(RetrievalState.AWAITING_CONFIRMATION, INDETERMINATE_PROGRESS, "")
            return

        self.mode = LoadMode.FULL
        self.view = RepositoryView.from_repository(repository)
        self._finish(session)

    # -- retrieval paths ---------------------------------------------------

    async def _run(self, session: RetrievalSession, mode: LoadMode) -> None:
        session.mode = mode
        self.mode = mode
        if mode is LoadMode.FULL:
            await self._load_full(session)
        else:
            await self._stream(session, first_parent=mode is LoadMode.SIMPLIFIED)

    async def _load_full(self, session: RetrievalSession) -> None:
        self._set(RetrievalState.FULL_LOADING, INDETERMINATE_PROGRESS, "Fetching commits and branches...")
        repository = await self.client.load_repository(session.path)
        self._ensure_current(session)
        self.view = RepositoryView.from_repository(repository)
        logger.info(f"Loaded {self.view.loaded_count} commits from {session.path}")
        self._finish(session)

    async def _stream(self, session: RetrievalSession, first_parent: bool) -> None:
        self._set(RetrievalState.STREAMING, INDETERMINATE_PROGRESS, "Starting stream...")
        view: Optional[RepositoryView] = None
        events = self.client.stream_repository(session.path, chunk_size=self.chunk_size, first_parent=first_parent)
        try:
            async with aclosing(events) as stream:
                async for event in stream:
                    self._ensure_current(session)
                    if isinstance(event, CommitsEvent) and view is not None:
                        self._set(RetrievalState.MERGING)
                    view = apply_stream_event(session, view, event)
                    self._on_event(session, view, event)
                    if session.state in SETTLED_STATES:
                        return
        except StreamUnavailableError as e:
            if view is not None:
                raise
            logger.warning(f"Stream unavailable ({e}), falling back to paginated requests")
            await self._load_first_page(session, first_parent)
            return

        self._ensure_current(session)
        raise ProviderError("Stream ended before completion")

    def _on_event(self, session: RetrievalSession, view: Optional[RepositoryView], event: StreamEvent) -> None:
        """Publish the outcome of one applied event to the loader's observers."""
        if view is not None:
            self.view = view

        if isinstance(event, MetadataEvent):
            self._set(RetrievalState.STREAMING, message="Loading commits...")
        elif isinstance(event, CommitsEvent):
            self._set(
                RetrievalState.STREAMING,
                session.progress,
                f"Loaded {view.loaded_count:,} of {view.total_count:,} commits...",
            )
        elif isinstance(event, CompleteEvent):
            logger.info(f"Stream for {session.path} complete: {view.loaded_count if view else 0} commits")
            self._finish(session)
        elif isinstance(event, ErrorEvent):
            self._fail(session, event.message)

    async def _load_first_page(self, session: RetrievalSession, first_parent: bool) -> None:
        metadata = await self.client.get_metadata(session.path)
        self._ensure_current(session)
        self.view = RepositoryView.from_metadata(metadata)
        self._set(RetrievalState.LOADING_MORE, INDETERMINATE_PROGRESS, "Loading commits...")

        page = await self.client.get_commits_page(
            session.path, skip=0, max_count=self.page_size, first_parent=first_parent
        )
        self._ensure_current(session)
        self.view.append(page.commits, total=page.total)
        self._finish(session)


def load_repository_loader(client: RepositoryClient, **kwargs) -> RepositoryLoader:
    """Factory function to create a RepositoryLoader."""
    return RepositoryLoader(client, **kwargs)
