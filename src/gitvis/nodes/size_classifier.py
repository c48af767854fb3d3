"""Repository size classification.

Decides, from the total commit count alone, whether a history can be loaded
in one request or should be streamed, and whether the stream should be
restricted to the first-parent lineage.
"""

from gitvis.errors import ValidationError
from gitvis.models.repository import RepoStats
from gitvis.types.state import LoadMode

LARGE_REPO_THRESHOLD = 10_000
HUGE_REPO_THRESHOLD = 100_000


def recommend_mode(total_commits: int) -> LoadMode:
    """Suggest a load mode from the commit count alone."""
    if total_commits > HUGE_REPO_THRESHOLD:
        return LoadMode.SIMPLIFIED
    if total_commits > LARGE_REPO_THRESHOLD:
        return LoadMode.PAGINATED
    return LoadMode.FULL


def classify(total_commits: int) -> RepoStats:
    """Classify a repository by its total commit count."""
    if total_commits < 0:
        raise ValidationError(f"Commit count cannot be negative: {total_commits}")

    return RepoStats(
        total_commits=total_commits,
        is_large_repo=total_commits > LARGE_REPO_THRESHOLD,
        recommended_mode=recommend_mode(total_commits),
    )
