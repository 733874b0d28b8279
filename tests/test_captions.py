"""AssemblyAICaptioner against an in-process mock of the REST API."""

from __future__ import annotations

import json

import httpx
import pytest

from campus_tutorials.captions import AssemblyAICaptioner, CaptionGenerationError, extract_audio

WORDS = [
    {"text": "Welcome", "start": 0, "end": 400},
    {"text": "to", "start": 450, "end": 600},
    {"text": "graphs.", "start": 650, "end": 1200},
]


def _api(poll_states: list[dict], seen: list[httpx.Request]):
    polls = iter(poll_states)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v2/upload":
            return httpx.Response(200, json={"upload_url": "https://cdn.example/upload/abc"})
        if request.url.path == "/v2/transcript" and request.method == "POST":
            return httpx.Response(200, json={"id": "tr_1", "status": "queued"})
        if request.url.path == "/v2/transcript/tr_1":
            return httpx.Response(200, json=next(polls))
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


def _captioner(transport: httpx.BaseTransport, **kwargs) -> AssemblyAICaptioner:
    defaults = dict(
        api_key="test-key",
        endpoint="https://assembly.test",
        poll_interval=1,
        poll_max_wait=5,
        extract_audio=False,
        transport=transport,
        sleep=lambda _: None,
    )
    defaults.update(kwargs)
    return AssemblyAICaptioner(**defaults)


def test_generate_renders_vtt_and_srt_without_writing_files(tmp_path) -> None:
    media = tmp_path / "lecture-1-2.mp4"
    media.write_bytes(b"\x00\x01")
    seen: list[httpx.Request] = []
    transport = _api([{"status": "processing"}, {"status": "completed", "confidence": 0.93, "words": WORDS}], seen)

    track = _captioner(transport).generate(media)

    assert track.vtt == "WEBVTT\n\n00:00:00.000 --> 00:00:01.200\nWelcome to graphs.\n\n"
    assert track.srt == "1\n00:00:00,000 --> 00:00:01,200\nWelcome to graphs.\n\n"
    assert track.cue_count == 1
    # placing the files is left to the workflow
    assert sorted(p.name for p in tmp_path.iterdir()) == ["lecture-1-2.mp4"]

    upload, submit = seen[0], seen[1]
    assert upload.headers["authorization"] == "test-key"
    assert upload.content == b"\x00\x01"
    assert json.loads(submit.content) == {
        "audio_url": "https://cdn.example/upload/abc",
        "language_code": "en",
        "speaker_labels": False,
    }
    assert len(seen) == 4


def test_transcription_error_raises(tmp_path) -> None:
    media = tmp_path / "v.mp4"
    media.write_bytes(b"\x00")
    transport = _api([{"status": "error", "error": "no spoken audio"}], [])

    with pytest.raises(CaptionGenerationError, match="no spoken audio"):
        _captioner(transport).generate(media)
    assert not (tmp_path / "v.vtt").exists()


def test_polling_gives_up_after_max_wait(tmp_path) -> None:
    media = tmp_path / "v.mp4"
    media.write_bytes(b"\x00")
    transport = _api([{"status": "processing"}] * 10, [])

    with pytest.raises(CaptionGenerationError, match="timeout"):
        _captioner(transport, poll_max_wait=3).generate(media)


def test_upload_rejection_raises(tmp_path) -> None:
    media = tmp_path / "v.mp4"
    media.write_bytes(b"\x00")
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "Invalid API key"}))

    with pytest.raises(CaptionGenerationError, match="upload failed 401"):
        _captioner(transport).generate(media)


def test_network_error_is_wrapped(tmp_path) -> None:
    media = tmp_path / "v.mp4"
    media.write_bytes(b"\x00")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CaptionGenerationError, match="connection refused"):
        _captioner(httpx.MockTransport(handler)).generate(media)


def test_missing_api_key(tmp_path) -> None:
    with pytest.raises(CaptionGenerationError, match="ASSEMBLYAI_API_KEY"):
        _captioner(httpx.MockTransport(lambda r: httpx.Response(500)), api_key=None).generate(tmp_path / "v.mp4")


def test_extract_audio_without_ffmpeg(tmp_path) -> None:
    with pytest.raises(CaptionGenerationError, match="ffmpeg not found"):
        extract_audio(tmp_path / "v.mp4", tmp_path, ffmpeg_bin="ffmpeg-does-not-exist-here")
