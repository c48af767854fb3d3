"""Tests for event-stream encoding and decoding."""

import pytest

from gitvis.errors import ProviderError
from gitvis.models.repository import RepositoryMetadata
from gitvis.nodes.size_classifier import classify
from gitvis.sse import EventStreamDecoder, decode_event, encode_event
from gitvis.types.events import CompleteEvent, ErrorEvent, MetadataEvent


def test_encode_error_event():
    assert encode_event(ErrorEvent("boom")) == 'event: error\ndata: {"error":"boom"}\n\n'


def test_encode_complete_event():
    assert encode_event(CompleteEvent()) == "event: complete\ndata: {}\n\n"


def test_metadata_uses_camel_case_keys():
    metadata = RepositoryMetadata(path="/repo", name="repo", current_branch="main", stats=classify(0))
    encoded = encode_event(MetadataEvent(metadata))
    assert '"currentBranch":"main"' in encoded
    assert '"totalCommits":0' in encoded


def test_decoder_handles_comments_and_multiline_data():
    decoder = EventStreamDecoder()
    lines = [": keep-alive", "event: error", 'data: {"error":', 'data: "split"}', ""]
    events = [decoder.feed(line) for line in lines]
    assert events[:-1] == [None, None, None, None]
    assert events[-1] == ErrorEvent("split")


def test_decoder_ignores_blank_lines_between_events():
    decoder = EventStreamDecoder()
    assert decoder.feed("") is None
    assert decoder.feed("event: complete\r") is None
    assert decoder.feed("data: {}") is None
    assert decoder.feed("") == CompleteEvent()


def test_unknown_event_name():
    with pytest.raises(ProviderError, match="Unknown stream event"):
        decode_event("progress", "{}")


def test_malformed_payload():
    with pytest.raises(ProviderError, match="Malformed"):
        decode_event("commits", '{"commits": "nope"}')
    with pytest.raises(ProviderError, match="Malformed"):
        decode_event("metadata", "{not json")
