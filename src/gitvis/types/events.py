"""Events exchanged over a repository stream.

A stream is always ``metadata``, then zero or more ``commits``, then exactly
one terminal ``complete`` or ``error``.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Union

from gitvis.models.repository import CommitChunk, RepositoryMetadata


@dataclass(frozen=True)
class MetadataEvent:
    metadata: RepositoryMetadata
    name: ClassVar[str] = "metadata"

    def payload(self) -> Dict[str, Any]:
        return self.metadata.to_wire()


@dataclass(frozen=True)
class CommitsEvent:
    chunk: CommitChunk
    name: ClassVar[str] = "commits"

    def payload(self) -> Dict[str, Any]:
        return self.chunk.to_wire()


@dataclass(frozen=True)
class CompleteEvent:
    name: ClassVar[str] = "complete"

    def payload(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    name: ClassVar[str] = "error"

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message}


StreamEvent = Union[MetadataEvent, CommitsEvent, CompleteEvent, ErrorEvent]

TERMINAL_EVENTS = (CompleteEvent, ErrorEvent)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
