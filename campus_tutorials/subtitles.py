"""Caption-track rendering.

Turns word-level timings (milliseconds, as returned by the transcription
API) into cues, then into WebVTT or SRT text. A cue closes when it holds
``MAX_WORDS_PER_CUE`` words, its text reaches ``MAX_CHARS_PER_CUE``
characters, or the transcript ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping

MAX_WORDS_PER_CUE = 8
MAX_CHARS_PER_CUE = 42


@dataclass
class Cue:
    start: int  # ms
    end: int  # ms
    text: str


def build_cues(
    words: Iterable[Mapping],
    max_words: int = MAX_WORDS_PER_CUE,
    max_chars: int = MAX_CHARS_PER_CUE,
) -> List[Cue]:
    words = list(words)
    cues: List[Cue] = []
    current: List[str] = []
    start = end = 0

    for index, word in enumerate(words):
        if not current:
            start = int(word["start"])
        current.append(str(word["text"]))
        end = int(word["end"])

        text = " ".join(current)
        if len(current) >= max_words or len(text) >= max_chars or index == len(words) - 1:
            cues.append(Cue(start=start, end=end, text=text))
            current = []

    return cues


def format_timestamp(milliseconds: int, separator: str = ".") -> str:
    """HH:MM:SS.mmm (WebVTT) or HH:MM:SS,mmm (SRT)."""
    total_seconds, ms = divmod(int(milliseconds), 1000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{separator}{ms:03d}"


def to_vtt(cues: Iterable[Cue]) -> str:
    out = "WEBVTT\n\n"
    for cue in cues:
        out += f"{format_timestamp(cue.start)} --> {format_timestamp(cue.end)}\n"
        out += f"{cue.text}\n\n"
    return out


def to_srt(cues: Iterable[Cue]) -> str:
    out = ""
    for number, cue in enumerate(cues, start=1):
        out += f"{number}\n"
        out += f"{format_timestamp(cue.start, ',')} --> {format_timestamp(cue.end, ',')}\n"
        out += f"{cue.text}\n\n"
    return out


__all__ = ["Cue", "build_cues", "format_timestamp", "to_vtt", "to_srt"]
