"""Tests for the repository stream event sequence."""

from datetime import datetime, timezone

import pytest

from gitvis.cancellation import CancellationToken
from gitvis.errors import LoadCancelled, ProviderError, ValidationError
from gitvis.models.base import Author, Commit
from gitvis.models.repository import CommitChunk, RepositoryMetadata
from gitvis.nodes.size_classifier import classify
from gitvis.nodes.streaming import iter_stream_events
from gitvis.types.events import CommitsEvent, CompleteEvent, ErrorEvent, MetadataEvent


def make_commits(start: int, count: int):
    return [
        Commit(
            hash=f"{i:040x}",
            short_hash=f"{i:07x}",
            message=f"Commit {i}",
            author=Author(name="Dev", email="dev@example.com"),
            date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        for i in range(start, start + count)
    ]


class FakeProvider:
    """Serves a fixed list of chunks, optionally failing after some of them."""

    def __init__(self, chunks, fail_after=None, metadata_error=None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.metadata_error = metadata_error
        self.requests = []

    def get_metadata(self, repo_path):
        if self.metadata_error:
            raise self.metadata_error
        total = sum(len(c.commits) for c in self.chunks)
        return RepositoryMetadata(path=repo_path, name="repo", current_branch="main", stats=classify(total))

    def stream_chunks(self, repo_path, chunk_size=500, first_parent=False):
        self.requests.append((repo_path, chunk_size, first_parent))
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise ProviderError("git log failed: disk on fire")
            yield chunk


def three_chunks():
    return [
        CommitChunk(commits=make_commits(0, 1000), progress=41, total=2437),
        CommitChunk(commits=make_commits(1000, 1000), progress=82, total=2437),
        CommitChunk(commits=make_commits(2000, 437), progress=100, total=2437),
    ]


def test_event_order():
    provider = FakeProvider(three_chunks())
    events = list(iter_stream_events(provider, "/repo", chunk_size=1000, first_parent=True))

    assert isinstance(events[0], MetadataEvent)
    assert all(isinstance(e, CommitsEvent) for e in events[1:-1])
    assert isinstance(events[-1], CompleteEvent)
    assert [e.chunk.progress for e in events[1:-1]] == [41, 82, 100]
    assert sum(len(e.chunk.commits) for e in events[1:-1]) == 2437
    assert provider.requests == [("/repo", 1000, True)]


def test_empty_history_sends_metadata_and_complete():
    events = list(iter_stream_events(FakeProvider([]), "/repo"))
    assert [e.name for e in events] == ["metadata", "complete"]


def test_failure_mid_stream_ends_with_error_event():
    provider = FakeProvider(three_chunks(), fail_after=2)
    events = list(iter_stream_events(provider, "/repo"))

    assert [e.name for e in events] == ["metadata", "commits", "commits", "error"]
    assert "disk on fire" in events[-1].message


def test_failure_before_metadata_is_an_error_event():
    provider = FakeProvider([], metadata_error=ValidationError("Not a valid git repository"))
    events = list(iter_stream_events(provider, "/repo"))
    assert events == [ErrorEvent("Not a valid git repository")]


def test_unexpected_exception_becomes_error_event():
    provider = FakeProvider([], metadata_error=RuntimeError("boom"))
    assert list(iter_stream_events(provider, "/repo")) == [ErrorEvent("boom")]


def test_progress_never_decreases():
    chunks = [
        CommitChunk(commits=make_commits(0, 10), progress=50, total=20),
        CommitChunk(commits=make_commits(10, 5), progress=40, total=20),
    ]
    events = list(iter_stream_events(FakeProvider(chunks), "/repo"))
    assert [e.chunk.progress for e in events if isinstance(e, CommitsEvent)] == [50, 50]


def test_cancelled_stream_stops_without_terminal_event():
    token = CancellationToken()
    stream = iter_stream_events(FakeProvider(three_chunks()), "/repo", token=token)

    assert isinstance(next(stream), MetadataEvent)
    assert isinstance(next(stream), CommitsEvent)
    token.cancel()
    assert list(stream) == []


def test_cancellation_token_callbacks():
    token = CancellationToken()
    calls = []
    token.on_cancel(lambda: calls.append("first"))
    token.cancel()
    token.cancel()
    token.on_cancel(lambda: calls.append("late"))
    assert calls == ["first", "late"]
    with pytest.raises(LoadCancelled):
        token.raise_if_cancelled()
