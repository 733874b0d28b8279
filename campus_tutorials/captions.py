# Captioning service: video file -> rendered WebVTT + SRT caption track

import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional

import httpx

from .config import Settings
from .logger import get_logger
from .subtitles import build_cues, to_srt, to_vtt

logger = get_logger(__name__)


class CaptionGenerationError(Exception):
    """The captioning service could not produce a caption track."""


@dataclass
class CaptionTrack:
    vtt: str
    srt: str
    cue_count: int = 0


class Captioner:
    """Contract for caption generators.

    ``generate`` blocks until the transcript is rendered and returns the
    track, or raises ``CaptionGenerationError``. It never writes caption
    files itself; the workflow places them once the attempt is accepted.
    """

    def generate(self, media_file: Path) -> CaptionTrack:
        raise NotImplementedError


def extract_audio(video: Path, out_dir: Path, ffmpeg_bin: str = "ffmpeg") -> Path:
    """Extract an mp3 track with ffmpeg into ``out_dir``."""
    audio = out_dir / f"{video.stem}.mp3"
    cmd = [ffmpeg_bin, "-y", "-i", str(video), "-vn", "-acodec", "libmp3lame", str(audio)]
    logger.info("Extracting audio: %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise CaptionGenerationError(f"ffmpeg not found ({ffmpeg_bin})") from e
    if proc.returncode != 0:
        raise CaptionGenerationError(f"ffmpeg exited with {proc.returncode}: {proc.stderr[-300:]}")
    logger.info("Audio extracted: %s", audio)
    return audio


def _iter_file(path: Path, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
    with path.open("rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                return
            yield chunk


class AssemblyAICaptioner(Captioner):
    """
    Transcribes through the AssemblyAI REST API and renders the word timings.
    Upload: POST /v2/upload (raw bytes) -> {"upload_url": ...}
    Submit: POST /v2/transcript {"audio_url": ..., "language_code": ...} -> {"id": ...}
    Poll:   GET /v2/transcript/{id} until status is "completed" or "error"
    """

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str = "https://api.assemblyai.com",
        timeout: float = 120,
        language_code: str = "en",
        poll_interval: float = 3.0,
        poll_max_wait: float = 1800,
        extract_audio: bool = True,
        ffmpeg_bin: str = "ffmpeg",
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._api_key = api_key
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._language_code = language_code
        self._poll_interval = poll_interval
        self._poll_max_wait = poll_max_wait
        self._extract_audio = extract_audio
        self._ffmpeg_bin = ffmpeg_bin
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssemblyAICaptioner":
        return cls(
            api_key=settings.ASSEMBLYAI_API_KEY,
            endpoint=settings.ASSEMBLYAI_ENDPOINT,
            timeout=settings.ASSEMBLYAI_TIMEOUT,
            language_code=settings.CAPTIONS_LANGUAGE,
            poll_interval=settings.POLL_INTERVAL,
            poll_max_wait=settings.POLL_MAX_WAIT,
            extract_audio=settings.CAPTIONS_EXTRACT_AUDIO,
            ffmpeg_bin=settings.FFMPEG_BIN,
        )

    def generate(self, media_file: Path) -> CaptionTrack:
        if not self._api_key:
            raise CaptionGenerationError("ASSEMBLYAI_API_KEY is missing in .env")

        media_file = Path(media_file)
        logger.info("Starting caption generation for %s", media_file)

        if self._extract_audio:
            with tempfile.TemporaryDirectory(prefix="captions-") as tmp:
                audio = extract_audio(media_file, Path(tmp), self._ffmpeg_bin)
                words = self._transcribe(audio)
        else:
            words = self._transcribe(media_file)

        cues = build_cues(words)
        logger.info("Rendered %d cues from %d words for %s", len(cues), len(words), media_file)
        return CaptionTrack(vtt=to_vtt(cues), srt=to_srt(cues), cue_count=len(cues))

    def _transcribe(self, source: Path) -> List[dict]:
        headers = {"authorization": self._api_key}
        try:
            with httpx.Client(
                base_url=self._endpoint,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                r = client.post("/v2/upload", content=_iter_file(source))
                if r.status_code != 200:
                    raise CaptionGenerationError(f"upload failed {r.status_code}: {r.text[:300]}")
                upload_url = r.json().get("upload_url")
                if not upload_url:
                    raise CaptionGenerationError(f"no upload_url in response: {r.text[:300]}")

                r = client.post(
                    "/v2/transcript",
                    json={
                        "audio_url": upload_url,
                        "language_code": self._language_code,
                        "speaker_labels": False,
                    },
                )
                if r.status_code != 200:
                    raise CaptionGenerationError(f"transcript request failed {r.status_code}: {r.text[:300]}")
                transcript_id = r.json().get("id")
                if not transcript_id:
                    raise CaptionGenerationError(f"no transcript id in response: {r.text[:300]}")

                return self._poll(client, transcript_id)
        except httpx.HTTPError as e:
            raise CaptionGenerationError(f"AssemblyAI request failed: {e}") from e

    def _poll(self, client: httpx.Client, transcript_id: str) -> List[dict]:
        waited = 0.0
        while waited < self._poll_max_wait:
            pr = client.get(f"/v2/transcript/{transcript_id}")
            if pr.status_code != 200:
                raise CaptionGenerationError(f"poll failed {pr.status_code}: {pr.text[:300]}")
            pp = pr.json()

            status = pp.get("status")
            if status == "completed":
                logger.info(
                    "Transcript %s completed (confidence=%s)", transcript_id, pp.get("confidence")
                )
                return pp.get("words") or []
            if status == "error":
                raise CaptionGenerationError(f"Transcription failed: {pp.get('error')}")

            self._sleep(self._poll_interval)
            waited += self._poll_interval

        raise CaptionGenerationError(f"transcription polling timeout after {waited:.0f}s")
