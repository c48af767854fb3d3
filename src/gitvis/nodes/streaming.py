"""
Streaming protocol endpoint core.

Turns one History Provider enumeration into the ordered event sequence of a
repository stream. Holds no state between calls: every call enumerates the
history again from the newest commit.
"""

from typing import Iterator, Optional

from loguru import logger

from gitvis.cancellation import CancellationToken
from gitvis.errors import GitVisError
from gitvis.nodes.history_provider import HistoryProvider
from gitvis.types.events import CommitsEvent, CompleteEvent, ErrorEvent, MetadataEvent, StreamEvent

DEFAULT_CHUNK_SIZE = 500


def iter_stream_events(
    provider: HistoryProvider,
    repo_path: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    first_parent: bool = False,
    token: Optional[CancellationToken] = None,
) -> Iterator[StreamEvent]:
    """Yield metadata, commit chunks and exactly one terminal event.

    Failures after the stream started are reported as an ``error`` event and
    end the stream; nothing is raised. A cancelled token ends the stream
    quietly between chunks.
    """
    token = token or CancellationToken()
    sent = 0
    try:
        metadata = provider.get_metadata(repo_path)
        if token.cancelled:
            return
        yield MetadataEvent(metadata)

        last_progress = 0
        for chunk in provider.stream_chunks(repo_path, chunk_size=chunk_size, first_parent=first_parent):
            if token.cancelled:
                logger.info(f"Stream for {repo_path} cancelled after {sent} commits")
                return
            if chunk.progress < last_progress:
                chunk = chunk.model_copy(update={"progress": last_progress})
            last_progress = chunk.progress
            sent += len(chunk.commits)
            logger.debug(f"Streaming chunk of {len(chunk.commits)} commits ({chunk.progress}%)")
            yield CommitsEvent(chunk)
    except GitVisError as e:
        logger.error(f"Stream for {repo_path} failed after {sent} commits: {e}")
        yield ErrorEvent(str(e))
        return
    except Exception as e:
        logger.exception(f"Unexpected failure while streaming {repo_path}")
        yield ErrorEvent(str(e) or e.__class__.__name__)
        return

    if token.cancelled:
        return
    logger.info(f"Stream for {repo_path} complete: {sent} commits")
    yield CompleteEvent()
