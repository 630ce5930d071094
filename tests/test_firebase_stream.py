from __future__ import annotations

import pytest

from pylivetrack.store.firebase import FirebaseLocationStore, SseDecoder, apply_stream_event


def test_sse_decoder_emits_on_blank_line() -> None:
    decoder = SseDecoder()

    assert decoder.feed("event: put\n") is None
    assert decoder.feed('data: {"path":"/","data":null}\n') is None
    assert decoder.feed("\n") == ("put", '{"path":"/","data":null}')


def test_sse_decoder_ignores_comments_and_empty_blocks() -> None:
    decoder = SseDecoder()

    assert decoder.feed(": ping") is None
    assert decoder.feed("") is None
    assert decoder.feed("event: keep-alive") is None
    assert decoder.feed("data: null") is None
    assert decoder.feed("") == ("keep-alive", "null")


def test_sse_decoder_joins_multiline_data() -> None:
    decoder = SseDecoder()
    decoder.feed("data: a")
    decoder.feed("data: b")

    assert decoder.feed("") == ("message", "a\nb")


def test_put_at_root_replaces_mirror() -> None:
    mirror = apply_stream_event(None, "put", {"path": "/", "data": {"latitude": 1.0, "longitude": 2.0}})
    assert mirror == {"latitude": 1.0, "longitude": 2.0}

    assert apply_stream_event(mirror, "put", {"path": "/", "data": None}) is None


def test_put_at_child_path() -> None:
    mirror = {"latitude": 1.0, "longitude": 2.0, "isTracking": True}

    updated = apply_stream_event(mirror, "put", {"path": "/isTracking", "data": False})

    assert updated == {"latitude": 1.0, "longitude": 2.0, "isTracking": False}
    assert mirror["isTracking"] is True


def test_put_null_child_removes_key() -> None:
    mirror = {"A": {"latitude": 1.0}, "B": {"latitude": 2.0}}

    assert apply_stream_event(mirror, "put", {"path": "/A", "data": None}) == {"B": {"latitude": 2.0}}


def test_patch_merges_children() -> None:
    mirror = {"latitude": 1.0, "longitude": 2.0, "timestamp": 10}

    updated = apply_stream_event(mirror, "patch", {"path": "/", "data": {"latitude": 3.0, "timestamp": 11}})

    assert updated == {"latitude": 3.0, "longitude": 2.0, "timestamp": 11}


def test_unknown_event_rejected() -> None:
    with pytest.raises(ValueError):
        apply_stream_event(None, "cancel", {"path": "/"})


def test_url_for_without_token() -> None:
    store = FirebaseLocationStore("https://demo.firebaseio.com/")

    assert store.url_for("/locations/A17") == "https://demo.firebaseio.com/locations/A17.json"
