#!/usr/bin/env python3
"""
examples/stream_demo.py

Streams a repository's history the way the gitvis server does and lays the
result out as a commit graph. Run it against any local repository to see the
event sequence, the per-chunk progress and the size of the final layout.
"""

import argparse
import os
import sys

from gitvis.errors import GitVisError
from gitvis.models.graph import DisplaySettings, LayoutOptions
from gitvis.models.repository import RepositoryView
from gitvis.nodes.history_provider import load_history_provider
from gitvis.nodes.layout import layout_commit_graph
from gitvis.nodes.repository_source import require_repository
from gitvis.nodes.streaming import iter_stream_events
from gitvis.types.events import CommitsEvent, CompleteEvent, ErrorEvent, MetadataEvent


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Demonstrate gitvis repository streaming")
    parser.add_argument(
        "--repo-path",
        type=str,
        default=os.getcwd(),
        help="Path to Git repository (default: current directory)",
    )
    parser.add_argument("--chunk-size", type=int, default=500, help="Commits per streamed chunk")
    parser.add_argument("--first-parent", action="store_true", help="Only follow first parents")
    parser.add_argument("--compact", action="store_true", help="Use compact node sizes for the layout")
    parser.add_argument("--max-layout", type=int, default=2000, help="Lay out at most this many commits")
    return parser.parse_args()


def format_commit(commit) -> str:
    refs = ", ".join(r.name for r in commit.refs)
    suffix = f" ({refs})" if refs else ""
    return f"  {commit.short_hash} {commit.date:%Y-%m-%d} {commit.author.name}: {commit.message}{suffix}"


def main():
    """Run the streaming demo."""
    args = parse_args()

    try:
        repo_path = require_repository(args.repo_path)
        provider = load_history_provider()
        view = None

        print(f"Streaming {repo_path} in chunks of {args.chunk_size}")
        for event in iter_stream_events(provider, repo_path, args.chunk_size, args.first_parent):
            if isinstance(event, MetadataEvent):
                view = RepositoryView.from_metadata(event.metadata)
                stats = event.metadata.stats
                print(f"Repository: {view.name} on {view.current_branch}")
                print(f"Branches: {len(view.branches)}, tags: {len(view.tags)}, submodules: {len(view.submodules)}")
                print(f"Total commits: {stats.total_commits} (recommended mode: {stats.recommended_mode.value})")
            elif isinstance(event, CommitsEvent):
                view.append(event.chunk.commits, total=event.chunk.total)
                print(f"[{event.chunk.progress:3d}%] {view.loaded_count}/{view.total_count} commits")
            elif isinstance(event, CompleteEvent):
                view.mark_complete()
                print("Stream complete")
            elif isinstance(event, ErrorEvent):
                print(f"Stream failed: {event.message}", file=sys.stderr)
                return 1

        print("\nNewest commits:")
        for commit in view.commits[:10]:
            print(format_commit(commit))

        commits = view.commits[: args.max_layout]
        model = layout_commit_graph(commits, LayoutOptions(), DisplaySettings(compact_mode=args.compact))
        box = model.bounding_box()
        print(f"\nLaid out {len(model.nodes)} nodes and {len(model.edges)} edges")
        if box:
            print(f"Canvas: {box[2] - box[0]:.0f} x {box[3] - box[1]:.0f}")

    except GitVisError as e:
        print(f"Error running stream demo: {str(e)}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
