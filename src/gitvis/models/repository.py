"""Repository-level records: stats, metadata, pages, chunks and the client view."""

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from pydantic import Field

from gitvis.models.base import Branch, Commit, Submodule, Tag, WireModel
from gitvis.types.state import LoadMode


class RepoStats(WireModel):
    """Size classification of a repository's history."""

    total_commits: int = Field(..., ge=0)
    is_large_repo: bool
    recommended_mode: LoadMode


class RepositoryMetadata(WireModel):
    """Everything about a repository except its commits."""

    path: str
    name: str
    current_branch: str
    branches: List[Branch] = Field(default_factory=list)
    tags: List[Tag] = Field(default_factory=list)
    stats: RepoStats
    submodules: List[Submodule] = Field(default_factory=list)


class Repository(RepositoryMetadata):
    """Metadata plus the complete commit list (full load)."""

    commits: List[Commit] = Field(default_factory=list)


class PaginatedCommits(WireModel):
    commits: List[Commit] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    has_more: bool


class CommitChunk(WireModel):
    """One ordered batch of a chunked enumeration."""

    commits: List[Commit] = Field(default_factory=list)
    progress: int = Field(..., ge=0, le=100)
    total: int = Field(..., ge=0)


@dataclass
class RepositoryView:
    """The client's in-memory picture of one repository.

    Commits are append-only while a load runs; a new load replaces the whole
    view instead of reusing it.
    """

    path: str
    name: str
    current_branch: str
    branches: List[Branch] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    submodules: List[Submodule] = field(default_factory=list)
    commits: List[Commit] = field(default_factory=list)
    loaded_count: int = 0
    total_count: int = 0
    stats: Optional[RepoStats] = None

    @classmethod
    def from_metadata(cls, metadata: RepositoryMetadata) -> "RepositoryView":
        return cls(
            path=metadata.path,
            name=metadata.name,
            current_branch=metadata.current_branch,
            branches=list(metadata.branches),
            tags=list(metadata.tags),
            submodules=list(metadata.submodules),
            total_count=metadata.stats.total_commits,
            stats=metadata.stats,
        )

    @classmethod
    def from_repository(cls, repository: Repository) -> "RepositoryView":
        view = cls.from_metadata(repository)
        view.append(repository.commits, total=len(repository.commits))
        return view

    @property
    def has_more(self) -> bool:
        return self.loaded_count < self.total_count

    def append(self, commits: List[Commit], total: Optional[int] = None) -> None:
        """Concatenate a batch in arrival order."""
        if total is not None:
            self.total_count = total
        self.commits.extend(commits)
        self.loaded_count = len(self.commits)
        if self.loaded_count > self.total_count:
            logger.warning(
                f"Received {self.loaded_count} commits for {self.name} but only "
                f"{self.total_count} were announced"
            )
            self.total_count = self.loaded_count

    def mark_complete(self) -> None:
        self.total_count = self.loaded_count
