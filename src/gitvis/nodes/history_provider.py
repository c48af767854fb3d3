"""
Commit history retrieval backed by GitPython.

The History Provider turns a repository path into typed commit records:
total counts, contiguous pages, and a lazy chunked enumeration used by the
streaming endpoint. Every enumeration covers all refs in date order, newest
first.
"""

from datetime import datetime
from pathlib import Path
from typing import Collection, Iterator, List, Optional, Protocol

from git import Head, RemoteReference, Repo, TagReference
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from loguru import logger

from gitvis.errors import ProviderError, ValidationError
from gitvis.models.base import Author, Branch, Commit, RefInfo, RefKind, Submodule, Tag
from gitvis.models.repository import CommitChunk, PaginatedCommits, Repository, RepositoryMetadata
from gitvis.nodes.size_classifier import classify

FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"
LOG_FIELDS = ["%H", "%h", "%s", "%b", "%an", "%ae", "%aI", "%P", "%D"]
LOG_FORMAT = "--format=" + FIELD_SEP.join(LOG_FIELDS) + RECORD_SEP


class HistoryProvider(Protocol):
    """What the streaming endpoint needs from a history backend."""

    def get_total_count(self, repo_path: str, first_parent: bool = False) -> int: ...

    def get_page(
        self, repo_path: str, max_count: int = 500, skip: int = 0, first_parent: bool = False
    ) -> PaginatedCommits: ...

    def stream_chunks(
        self, repo_path: str, chunk_size: int = 500, first_parent: bool = False
    ) -> Iterator[CommitChunk]: ...

    def get_metadata(self, repo_path: str) -> RepositoryMetadata: ...

    def get_repository(self, repo_path: str) -> Repository: ...

    def get_commit(self, repo_path: str, commit_hash: str) -> Optional[Commit]: ...


def parse_refs(decoration: str, remotes: Collection[str] = ("origin",)) -> List[RefInfo]:
    """Parse ``%D`` decoration text into ref records."""
    if not decoration or not decoration.strip():
        return []

    refs = []
    for part in (p.strip() for p in decoration.split(",")):
        if not part or part == "HEAD":
            continue
        if part.startswith("HEAD -> "):
            refs.append(RefInfo(name=part[len("HEAD -> ") :], kind=RefKind.BRANCH, is_head=True))
        elif part.startswith("tag: "):
            refs.append(RefInfo(name=part[len("tag: ") :], kind=RefKind.TAG))
        elif "/" in part and part.split("/", 1)[0] in remotes:
            refs.append(RefInfo(name=part, kind=RefKind.REMOTE))
        else:
            refs.append(RefInfo(name=part, kind=RefKind.BRANCH))
    return refs


def parse_log(output: str, remotes: Collection[str] = ("origin",)) -> List[Commit]:
    """Parse the output of ``git log`` run with LOG_FORMAT."""
    commits = []
    for record in output.split(RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        fields = record.split(FIELD_SEP)
        if len(fields) != len(LOG_FIELDS):
            raise ProviderError(f"Unexpected log record with {len(fields)} fields")
        commit_hash, short_hash, subject, body, name, email, date, parents, decoration = fields
        commits.append(
            Commit(
                hash=commit_hash,
                short_hash=short_hash,
                message=subject,
                body=body.strip(),
                author=Author(name=name, email=email),
                date=datetime.fromisoformat(date),
                parents=parents.split(),
                refs=parse_refs(decoration, remotes),
            )
        )
    return commits


def progress_percent(loaded: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(loaded / total * 100))


class GitHistoryProvider:
    """History Provider reading a local repository through GitPython."""

    def _open(self, repo_path: str) -> Repo:
        try:
            return Repo(repo_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise ValidationError(f"Not a valid git repository: {repo_path}") from e

    def _count(self, repo: Repo, first_parent: bool) -> int:
        """Count commits reachable from any ref, as ``git rev-list --count``."""
        args = ["--all", "--count"]
        if first_parent:
            args.append("--first-parent")
        try:
            return int(repo.git.rev_list(*args).strip() or 0)
        except GitCommandError as e:
            # An empty repository has no refs for --all to walk.
            logger.debug(f"rev-list failed, treating history as empty: {e}")
            return 0

    def _log(self, repo: Repo, *args: str) -> List[Commit]:
        """Run ``git log`` with the record format and parse its output."""
        remotes = {remote.name for remote in repo.remotes}
        try:
            output = repo.git.log("--all", "--date-order", LOG_FORMAT, *args)
        except GitCommandError as e:
            if self._count(repo, first_parent=False) == 0:
                return []
            raise ProviderError(f"git log failed: {e.stderr.strip() if e.stderr else e}") from e
        return parse_log(output, remotes)

    def _read_page(
        self, repo: Repo, max_count: int, skip: int, first_parent: bool, total: int
    ) -> PaginatedCommits:
        """Read one page of ``git log`` and report whether more commits follow."""
        args = [f"--max-count={max_count}", f"--skip={skip}"]
        if first_parent:
            args.append("--first-parent")
        commits = self._log(repo, *args) if skip < total else []
        return PaginatedCommits(commits=commits, total=total, has_more=skip + len(commits) < total)

    def get_total_count(self, repo_path: str, first_parent: bool = False) -> int:
        return self._count(self._open(repo_path), first_parent)

    def get_page(
        self, repo_path: str, max_count: int = 500, skip: int = 0, first_parent: bool = False
    ) -> PaginatedCommits:
        if max_count <= 0 or skip < 0:
            raise ValidationError(f"Invalid page request: max_count={max_count}, skip={skip}")
        repo = self._open(repo_path)
        total = self._count(repo, first_parent)
        return self._read_page(repo, max_count, skip, first_parent, total)

    def stream_chunks(
        self, repo_path: str, chunk_size: int = 500, first_parent: bool = False
    ) -> Iterator[CommitChunk]:
        """Enumerate the history from the newest commit in fixed-size chunks."""
        if chunk_size <= 0:
            raise ValidationError(f"Chunk size must be positive, got {chunk_size}")
        repo = self._open(repo_path)
        total = self._count(repo, first_parent)
        logger.info(f"Streaming {total} commits from {repo_path} in chunks of {chunk_size}")

        skip = 0
        while skip < total:
            page = self._read_page(repo, chunk_size, skip, first_parent, total)
            if not page.commits:
                break
            skip += len(page.commits)
            yield CommitChunk(commits=page.commits, progress=progress_percent(skip, total), total=total)
            if not page.has_more:
                break

    def _current_branch(self, repo: Repo) -> str:
        """Name of the checked-out branch, or ``HEAD`` when detached."""
        if repo.head.is_detached:
            return "HEAD"
        try:
            return repo.active_branch.name
        except TypeError:
            return "HEAD"

    def _branches_and_tags(self, repo: Repo):
        active = self._current_branch(repo)
        branches, tags = [], []
        for ref in repo.refs:
            try:
                target = ref.commit.hexsha
            except ValueError:
                # Symbolic refs pointing nowhere, e.g. a dangling origin/HEAD.
                continue
            if isinstance(ref, TagReference):
                tags.append(Tag(name=ref.name, commit=target))
            elif isinstance(ref, RemoteReference):
                branches.append(Branch(name=ref.name, commit=target, is_remote=True))
            elif isinstance(ref, Head):
                branches.append(Branch(name=ref.name, commit=target, is_head=ref.name == active))
        return branches, tags

    def get_submodules(self, repo_path: str) -> List[Submodule]:
        repo = self._open(repo_path)
        if not (Path(repo.working_tree_dir or repo_path) / ".gitmodules").exists():
            return []
        submodules = []
        for sm in repo.submodules:
            submodules.append(
                Submodule(
                    path=sm.path,
                    url=sm.url,
                    commit=sm.hexsha,
                    initialized=sm.module_exists(),
                )
            )
        return submodules

    def get_metadata(self, repo_path: str) -> RepositoryMetadata:
        repo = self._open(repo_path)
        branches, tags = self._branches_and_tags(repo)
        return RepositoryMetadata(
            path=repo_path,
            name=Path(repo_path).name or "repository",
            current_branch=self._current_branch(repo),
            branches=branches,
            tags=tags,
            stats=classify(self._count(repo, first_parent=False)),
            submodules=self.get_submodules(repo_path),
        )

    def get_repository(self, repo_path: str) -> Repository:
        repo = self._open(repo_path)
        commits = self._log(repo)
        metadata = self.get_metadata(repo_path)
        logger.info(f"Loaded {len(commits)} commits from {repo_path}")
        return Repository(**dict(metadata), commits=commits)

    def get_commit(self, repo_path: str, commit_hash: str) -> Optional[Commit]:
        repo = self._open(repo_path)
        remotes = {remote.name for remote in repo.remotes}
        try:
            output = repo.git.log("-1", LOG_FORMAT, commit_hash, "--")
        except GitCommandError:
            return None
        commits = parse_log(output, remotes)
        return commits[0] if commits else None


def load_history_provider() -> GitHistoryProvider:
    """Factory function to create the default History Provider."""
    return GitHistoryProvider()
