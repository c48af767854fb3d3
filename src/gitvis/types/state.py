"""State types for repository retrieval."""

from dataclasses import dataclass
from enum import Enum

# Progress value meaning "no percentage available".
INDETERMINATE_PROGRESS = -1


class LoadMode(str, Enum):
    """How a repository's history is retrieved."""

    FULL = "full"  # one request, every commit
    PAGINATED = "paginated"  # chunked stream of the full history
    SIMPLIFIED = "simplified"  # chunked stream, first-parent lineage only


class RetrievalState(str, Enum):
    IDLE = "idle"
    CHECKING_SIZE = "checking_size"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    FULL_LOADING = "full_loading"
    STREAMING = "streaming"
    MERGING = "merging"
    LOADING_MORE = "loading_more"
    CLONING = "cloning"
    DONE = "done"
    FAILED = "failed"


BUSY_STATES = frozenset(
    {
        RetrievalState.CHECKING_SIZE,
        RetrievalState.FULL_LOADING,
        RetrievalState.STREAMING,
        RetrievalState.MERGING,
        RetrievalState.LOADING_MORE,
        RetrievalState.CLONING,
    }
)

SETTLED_STATES = frozenset({RetrievalState.DONE, RetrievalState.FAILED})


@dataclass(frozen=True)
class LoadProgress:
    """Snapshot handed to loader listeners on every transition."""

    state: RetrievalState
    progress: int
    message: str
    loaded: int
    total: int
    error: str = ""

    @property
    def is_indeterminate(self) -> bool:
        return self.progress < 0
