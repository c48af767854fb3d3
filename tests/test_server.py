"""Tests for the HTTP API and the event-stream endpoint."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from git import Repo

from gitvis.cancellation import CancellationToken
from gitvis.models.base import Author, Commit
from gitvis.models.repository import CommitChunk, RepositoryMetadata
from gitvis.nodes.size_classifier import classify
from gitvis.nodes.streaming import iter_stream_events
from gitvis.server import _event_source, create_app
from gitvis.sse import EventStreamDecoder

BASE_TIME = 1_700_000_000


def create_commit(repo: Repo, file_path: Path, content: str, message: str, minute: int):
    file_path.write_text(content)
    repo.index.add([str(file_path)])
    date = f"{BASE_TIME + minute * 60} +0000"
    return repo.index.commit(message, author_date=date, commit_date=date)


@pytest.fixture
def repo_path(tmp_path):
    """A linear repository with five commits and one tag."""
    path = tmp_path / "sample"
    path.mkdir()
    repo = Repo.init(path)
    for i in range(5):
        commit = create_commit(repo, path / "file.txt", f"content {i}", f"Commit {i}", i)
        if i == 1:
            repo.create_tag("v0.1.0", ref=commit)
    return str(path)


@pytest.fixture
def client():
    return TestClient(create_app(config={"chunk_size": 2}))


def read_events(text: str):
    decoder = EventStreamDecoder()
    events = []
    for line in text.splitlines() + [""]:
        event = decoder.feed(line)
        if event is not None:
            events.append(event)
    return events


def test_validate(client, repo_path, tmp_path):
    assert client.get("/api/repository/validate", params={"path": repo_path}).json() == {"valid": True}
    assert client.get("/api/repository/validate", params={"path": str(tmp_path)}).json() == {"valid": False}


def test_stats(client, repo_path):
    response = client.post("/api/repository/stats", json={"path": repo_path})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"totalCommits": 5, "isLargeRepo": False, "recommendedMode": "full"}


@pytest.mark.parametrize("path", ["", "/definitely/not/here"])
def test_invalid_path_is_a_bad_request(client, path):
    response = client.post("/api/repository/stats", json={"path": path})
    assert response.status_code == 400
    assert response.json()["error"]


def test_metadata(client, repo_path):
    data = client.post("/api/repository/metadata", json={"path": repo_path}).json()["data"]
    assert data["name"] == "sample"
    assert data["tags"][0]["name"] == "v0.1.0"
    assert data["stats"]["totalCommits"] == 5
    assert "commits" not in data


def test_full_load(client, repo_path):
    data = client.post("/api/repository/load", json={"path": repo_path}).json()["data"]
    assert [c["message"] for c in data["commits"]] == [f"Commit {i}" for i in range(4, -1, -1)]
    assert data["commits"][0]["shortHash"]
    assert data["commits"][-1]["parents"] == []


def test_commit_pages(client, repo_path):
    first = client.post("/api/repository/commits", params={"maxCount": 2}, json={"path": repo_path}).json()
    last = client.post(
        "/api/repository/commits", params={"maxCount": 2, "skip": 4}, json={"path": repo_path}
    ).json()

    assert len(first["data"]["commits"]) == 2
    assert first["data"]["hasMore"] is True
    assert len(last["data"]["commits"]) == 1
    assert last["data"]["hasMore"] is False
    assert last["data"]["total"] == 5


def test_commit_pages_reject_bad_parameters(client, repo_path):
    response = client.post("/api/repository/commits", params={"maxCount": 0}, json={"path": repo_path})
    assert response.status_code == 422


def test_stream(client, repo_path):
    with client.stream("POST", "/api/repository/stream", json={"path": repo_path}) as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        text = "".join(response.iter_text())

    events = read_events(text)
    assert [e.name for e in events] == ["metadata", "commits", "commits", "commits", "complete"]
    assert events[0].metadata.stats.total_commits == 5
    assert [e.chunk.progress for e in events[1:-1]] == [40, 80, 100]
    streamed = [c.message for e in events[1:-1] for c in e.chunk.commits]
    assert streamed == [f"Commit {i}" for i in range(4, -1, -1)]


def test_stream_chunk_size_parameter(client, repo_path):
    response = client.post("/api/repository/stream", params={"chunkSize": 10}, json={"path": repo_path})
    events = read_events(response.text)
    assert [e.name for e in events] == ["metadata", "commits", "complete"]


def test_stream_rejects_invalid_path_before_streaming(client, tmp_path):
    response = client.post("/api/repository/stream", json={"path": str(tmp_path)})
    assert response.status_code == 400
    assert response.json() == {"error": "Not a valid git repository"}


def test_commit_details(client, repo_path):
    head = Repo(repo_path).head.commit.hexsha
    response = client.get(f"/api/commit/{head}", params={"path": repo_path})
    assert response.status_code == 200
    assert response.json()["commit"]["message"] == "Commit 4"

    missing = client.get(f"/api/commit/{'0' * 40}", params={"path": repo_path})
    assert missing.status_code == 404


def test_clone_requires_a_valid_url(client):
    assert client.post("/api/repository/clone", json={"url": ""}).status_code == 400
    assert client.post("/api/repository/clone", json={"url": "not a url"}).status_code == 400


class EndlessProvider:
    """Serves one-commit chunks forever and records how many were pulled."""

    def __init__(self):
        self.pulled = 0
        self.closed = False

    def get_metadata(self, repo_path):
        return RepositoryMetadata(path=repo_path, name="repo", current_branch="main", stats=classify(1000))

    def stream_chunks(self, repo_path, chunk_size=500, first_parent=False):
        try:
            while True:
                self.pulled += 1
                commit = Commit(
                    hash=f"{self.pulled:040x}",
                    short_hash=f"{self.pulled:07x}",
                    message=f"Commit {self.pulled}",
                    author=Author(name="Dev", email="dev@example.com"),
                    date=datetime(2024, 1, 1, tzinfo=timezone.utc),
                )
                yield CommitChunk(commits=[commit], progress=0, total=1000)
        finally:
            self.closed = True


class FakeRequest:
    """Reports the client as connected for a fixed number of checks."""

    def __init__(self, connected_checks):
        self.remaining = connected_checks

    async def is_disconnected(self):
        self.remaining -= 1
        return self.remaining < 0


@pytest.mark.asyncio
async def test_disconnect_cancels_and_closes_the_producer():
    provider = EndlessProvider()
    token = CancellationToken()
    events = iter_stream_events(provider, "/repo", chunk_size=1, token=token)

    messages = [m async for m in _event_source(FakeRequest(connected_checks=2), events, token)]

    assert [m.split("\n", 1)[0] for m in messages] == ["event: metadata", "event: commits"]
    assert token.cancelled
    assert provider.pulled == 1
    assert provider.closed


@pytest.mark.asyncio
async def test_abandoned_response_cancels_and_closes_the_producer():
    provider = EndlessProvider()
    token = CancellationToken()
    events = iter_stream_events(provider, "/repo", chunk_size=1, token=token)
    source = _event_source(FakeRequest(connected_checks=100), events, token)

    assert (await source.__anext__()).startswith("event: metadata")
    assert (await source.__anext__()).startswith("event: commits")
    await source.aclose()

    assert token.cancelled
    assert provider.pulled == 1
    assert provider.closed
