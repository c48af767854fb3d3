"""
Commit color assignment.

Both strategies derive a color from an identity (a branch lineage or an
author) through a stable digest, so the same commits always get the same
colors no matter in which order they are handed over or rendered.
"""

import hashlib
from typing import Dict, Iterable, Optional

from gitvis.models.base import Commit, RefInfo, RefKind

PALETTE = [
    "#4CAF50",  # green
    "#2196F3",  # blue
    "#FF9800",  # orange
    "#9C27B0",  # purple
    "#F44336",  # red
    "#00BCD4",  # cyan
    "#E91E63",  # pink
    "#795548",  # brown
    "#3F51B5",  # indigo
    "#8BC34A",  # light green
    "#FFC107",  # amber
    "#607D8B",  # blue grey
]

DEFAULT_COLOR = "#888888"

_KIND_ORDER = {RefKind.BRANCH: 1, RefKind.REMOTE: 2, RefKind.TAG: 3}


def color_for(identity: str) -> str:
    """Pick a palette color for a branch name or author identity."""
    digest = hashlib.sha1(identity.encode("utf-8")).digest()
    return PALETTE[int.from_bytes(digest[:4], "big") % len(PALETTE)]


def _ref_priority(ref: RefInfo):
    return (0 if ref.is_head else _KIND_ORDER[ref.kind], ref.name)


def _lineage_label(commit: Commit) -> Optional[str]:
    if not commit.refs:
        return None
    return min(commit.refs, key=_ref_priority).name


def assign_branch_colors(commits: Iterable[Commit]) -> Dict[str, str]:
    """Color commits by the branch lineage they belong to.

    Ref tips claim their first-parent chain, head branch first, then local
    branches, remotes and tags, ties broken by name. Chains no ref reaches
    are labelled by their own tip hash.
    """
    by_hash = {c.hash: c for c in commits}
    labels: Dict[str, str] = {}

    def claim(start: str, label: str) -> None:
        current = start
        while current in by_hash and current not in labels:
            labels[current] = label
            parents = by_hash[current].parents
            current = parents[0] if parents else ""

    tips = sorted(
        (c for c in by_hash.values() if c.refs),
        key=lambda c: (_ref_priority(min(c.refs, key=_ref_priority)), c.hash),
    )
    for tip in tips:
        claim(tip.hash, _lineage_label(tip))

    continued = set()
    for c in by_hash.values():
        if c.hash not in labels and c.parents:
            continued.add(c.parents[0])
    for h in sorted(h for h in by_hash if h not in labels and h not in continued):
        claim(h, h)

    return {h: color_for(label) for h, label in labels.items()}


def author_identity(commit: Commit) -> str:
    return (commit.author.email or commit.author.name).strip().lower()


def assign_author_colors(commits: Iterable[Commit]) -> Dict[str, str]:
    """Color commits by author identity (email, falling back to name)."""
    return {c.hash: color_for(author_identity(c)) for c in commits}
