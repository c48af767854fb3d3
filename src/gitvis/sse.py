"""Text event-stream encoding and decoding for repository streams."""

import json
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from gitvis.errors import ProviderError
from gitvis.models.repository import CommitChunk, RepositoryMetadata
from gitvis.types.events import CommitsEvent, CompleteEvent, ErrorEvent, MetadataEvent, StreamEvent


def encode_event(event: StreamEvent) -> str:
    """Render an event as one ``text/event-stream`` message."""
    data = json.dumps(event.payload(), separators=(",", ":"))
    return f"event: {event.name}\ndata: {data}\n\n"


def decode_event(name: str, data: str) -> StreamEvent:
    """Turn a named event and its JSON data back into a typed event."""
    try:
        payload = json.loads(data) if data else {}
        if name == MetadataEvent.name:
            return MetadataEvent(RepositoryMetadata.model_validate(payload))
        if name == CommitsEvent.name:
            return CommitsEvent(CommitChunk.model_validate(payload))
        if name == CompleteEvent.name:
            return CompleteEvent()
        if name == ErrorEvent.name:
            return ErrorEvent(str(payload.get("error", "Unknown stream error")))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ProviderError(f"Malformed {name!r} event: {e}") from e
    raise ProviderError(f"Unknown stream event {name!r}")


class EventStreamDecoder:
    """Incremental decoder fed one line at a time (without line endings)."""

    def __init__(self):
        self._name: Optional[str] = None
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[StreamEvent]:
        """Consume a line; return an event when a blank line completes one."""
        line = line.rstrip("\r")
        if line == "":
            if self._name is None and not self._data:
                return None
            name = self._name or "message"
            data = "\n".join(self._data)
            self._name, self._data = None, []
            return decode_event(name, data)

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._name = value
        elif field == "data":
            self._data.append(value)
        return None
