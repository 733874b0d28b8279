"""Shared fixtures: temp upload dir, file-backed SQLite, fake captioners."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# settings are read at import time; keep test runs out of the repo's uploads/ and db
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="campus-tutorials-tests-"))
os.environ.setdefault("UPLOAD_DIR", str(_TMP_ROOT / "uploads"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_ROOT / 'import.db'}")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from campus_tutorials.captions import CaptionGenerationError, Captioner, CaptionTrack  # noqa: E402
from campus_tutorials.db import get_session  # noqa: E402
from campus_tutorials.main import app, get_caption_worker, get_tutorials_dir  # noqa: E402
from campus_tutorials.models import Tutorial  # noqa: E402
from campus_tutorials.workflow import CaptionWorker  # noqa: E402


class FakeCaptioner(Captioner):
    """Returns a one-cue track, or raises when ``fail`` is set."""

    def __init__(self, fail: bool = False, text: str = "hello"):
        self.fail = fail
        self.text = text
        self.calls: list[Path] = []
        self.before_generate = None

    def generate(self, media_file: Path) -> CaptionTrack:
        self.calls.append(Path(media_file))
        if self.before_generate:
            self.before_generate(Path(media_file))
        if self.fail:
            raise CaptionGenerationError("captioning service unavailable")
        return make_track(self.text)


def make_track(text: str = "hello") -> CaptionTrack:
    return CaptionTrack(
        vtt=f"WEBVTT\n\n00:00:00.000 --> 00:00:01.000\n{text}\n\n",
        srt=f"1\n00:00:00,000 --> 00:00:01,000\n{text}\n\n",
        cue_count=1,
    )


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def tutorials_dir(tmp_path):
    d = tmp_path / "uploads" / "tutorials"
    d.mkdir(parents=True)
    return d


@pytest.fixture
def captioner():
    return FakeCaptioner()


@pytest.fixture
def worker(captioner, engine):
    w = CaptionWorker(captioner, engine, max_workers=2)
    yield w
    w.join(timeout=10)
    w.shutdown()


@pytest.fixture
def client(engine, tutorials_dir, worker):
    def _get_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_tutorials_dir] = lambda: tutorials_dir
    app.dependency_overrides[get_caption_worker] = lambda: worker
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fetch(engine):
    """Fresh read of a tutorial row, bypassing any session cache."""

    def _fetch(tutorial_id: str) -> Tutorial | None:
        with Session(engine) as s:
            return s.get(Tutorial, tutorial_id)

    return _fetch


@pytest.fixture
def upload(client, worker):
    """POST /api/tutorials with a small multipart body.

    Waits for the caption attempt it started unless ``wait=False``.
    """

    def _upload(filename: str = "lecture.mp4", content: bytes = b"\x00video", wait: bool = True, **fields):
        data = {"title": "Intro to Graphs", "course": "CS201", "description": "week 1"}
        data.update(fields)
        resp = client.post("/api/tutorials", data=data, files={"file": (filename, content, "application/octet-stream")})
        if wait:
            assert worker.join(timeout=10)
        return resp

    return _upload
