# Upload storage and caption artifact paths

import os
import posixpath
import random
import time
from pathlib import Path
from typing import BinaryIO

from .logger import get_logger

logger = get_logger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
PDF_EXTENSION = ".pdf"
CAPTION_EXTENSION = ".vtt"
# every caption-track format written next to the media file
CAPTION_ARTIFACT_EXTENSIONS = (".vtt", ".srt")

CHUNK_SIZE = 1024 * 1024


class UploadTooLarge(Exception):
    def __init__(self, limit_bytes: int):
        super().__init__(f"File exceeds the {limit_bytes // (1024 * 1024)}MB upload limit")
        self.limit_bytes = limit_bytes


def stored_name(original: str) -> str:
    """intro.mp4 -> intro-1712345678901-123456789.mp4"""
    p = Path(original)
    stem = p.stem.replace(" ", "_") or "file"
    unique = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{stem}-{unique}{p.suffix.lower()}"


def save_upload(src: BinaryIO, dest: Path, limit_bytes: int) -> int:
    """Stream an upload to disk, returning its size. Nothing is left behind unless it succeeds."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    try:
        with dest.open("wb") as f:
            while True:
                chunk = src.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > limit_bytes:
                    raise UploadTooLarge(limit_bytes)
                f.write(chunk)
    except BaseException:
        safe_unlink(dest)
        raise
    return written


def caption_path_for(media_file: str | Path, ext: str = CAPTION_EXTENSION) -> Path:
    return Path(media_file).with_suffix(ext)


def caption_url_for(media_path: str, ext: str = CAPTION_EXTENSION) -> str:
    """/uploads/videos/v1.mp4 -> /uploads/videos/v1.vtt"""
    root, _ = posixpath.splitext(media_path)
    return root + ext


def safe_unlink(p: str | Path | None) -> bool:
    if not p:
        return False
    path = Path(p)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
        return False
    return True


def remove_caption_artifacts(media_file: str | Path) -> list[Path]:
    removed = []
    for ext in CAPTION_ARTIFACT_EXTENSIONS:
        artifact = caption_path_for(media_file, ext)
        if safe_unlink(artifact):
            removed.append(artifact)
    return removed


def remove_tutorial_files(media_file: str | Path) -> list[Path]:
    """Media file plus every caption-track sibling."""
    removed = remove_caption_artifacts(media_file)
    if safe_unlink(media_file):
        removed.insert(0, Path(media_file))
    return removed


def write_caption_track(media_file: str | Path, tracks: dict[str, str]) -> Path:
    """Write ``{".vtt": text, ".srt": text}`` beside the media file.

    Each file is written under a temporary name and renamed into place, so a
    reader of the static URL never sees a half-written track. Returns the
    ``.vtt`` path.
    """
    for ext, text in tracks.items():
        final = caption_path_for(media_file, ext)
        tmp = final.with_name(f".{final.name}.{os.getpid()}.tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, final)
        except BaseException:
            safe_unlink(tmp)
            raise
    return caption_path_for(media_file)
