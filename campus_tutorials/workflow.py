"""Caption generation workflow.

Status machine for a video tutorial's caption track::

    (upload) -> generating -> completed | failed
    completed | failed | generating --regenerate--> generating

Every entry into ``generating`` bumps ``Tutorial.captions_attempt``. An
attempt's outcome is written only while its token is still the current
one, so an older overlapping attempt can never overwrite a newer one, and
an outcome for a deleted tutorial is dropped.

Attempts run on the worker's own thread pool, never on the pool that
serves requests, so a slow captioning service cannot stall the API.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import Engine, update
from sqlmodel import Session

from .captions import Captioner, CaptionTrack
from .files import caption_url_for, write_caption_track
from .logger import get_logger
from .models import CaptionStatus, Tutorial, utcnow

logger = get_logger(__name__)


class CaptionWorkflowError(Exception):
    """Synchronous, caller-visible workflow error."""


class TutorialNotFound(CaptionWorkflowError):
    def __init__(self, tutorial_id: str):
        super().__init__("Tutorial not found")
        self.tutorial_id = tutorial_id


class CaptionsNotSupported(CaptionWorkflowError):
    def __init__(self, tutorial_id: str):
        super().__init__("Captions can only be generated for videos")
        self.tutorial_id = tutorial_id


class MediaFileMissing(CaptionWorkflowError):
    def __init__(self, tutorial_id: str):
        super().__init__("Video file not found on server")
        self.tutorial_id = tutorial_id


class CaptionWorker:
    def __init__(self, captioner: Captioner, engine: Engine, max_workers: int = 4):
        self._captioner = captioner
        self._engine = engine
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="caption-worker"
        )
        self._pending: dict[Future, tuple[str, str, int]] = {}
        self._pending_lock = threading.Lock()
        # token check and file placement happen as one step
        self._finish_lock = threading.Lock()

    def begin(self, session: Session, tutorial: Tutorial) -> int:
        """Move a video tutorial into ``generating`` and persist it. Returns the new attempt token."""
        tutorial.captions_status = CaptionStatus.GENERATING
        tutorial.captions_url = None
        tutorial.captions_attempt += 1
        tutorial.updated_at = utcnow()
        session.add(tutorial)
        session.commit()
        session.refresh(tutorial)
        return tutorial.captions_attempt

    def schedule(self, background_tasks: BackgroundTasks, tutorial: Tutorial) -> None:
        """Hand the current attempt to the worker pool once the response is sent."""
        logger.info(
            "Dispatching caption attempt %d for tutorial %s", tutorial.captions_attempt, tutorial.id
        )
        background_tasks.add_task(
            self.submit, tutorial.id, tutorial.stored_path, tutorial.captions_attempt
        )

    def submit(self, tutorial_id: str, stored_path: str, attempt: int) -> Optional[Future]:
        try:
            with self._pending_lock:
                future = self._executor.submit(self.run, tutorial_id, stored_path, attempt)
                self._pending[future] = (tutorial_id, stored_path, attempt)
        except RuntimeError:
            # executor already shut down
            logger.error("Caption worker is stopped; attempt %d for %s fails", attempt, tutorial_id)
            self.finish(tutorial_id, stored_path, attempt, CaptionStatus.FAILED)
            return None
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.pop(future, None)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the attempts submitted so far. False if some are still running at the timeout."""
        with self._pending_lock:
            futures = list(self._pending)
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        """Stop taking attempts. Queued ones are cancelled and marked failed; running ones finish."""
        with self._pending_lock:
            pending = list(self._pending.items())
        cancelled = [args for future, args in pending if future.cancel()]
        self._executor.shutdown(wait=False)
        for tutorial_id, stored_path, attempt in cancelled:
            self.finish(tutorial_id, stored_path, attempt, CaptionStatus.FAILED)
        if cancelled:
            logger.warning("Cancelled %d queued caption attempts on shutdown", len(cancelled))

    def regenerate(self, session: Session, tutorial_id: str) -> Tutorial:
        # outcomes are written from other sessions; never trust a cached row here
        tutorial = session.get(Tutorial, tutorial_id, populate_existing=True)
        if not tutorial:
            raise TutorialNotFound(tutorial_id)
        if not tutorial.is_video:
            raise CaptionsNotSupported(tutorial_id)
        if not Path(tutorial.stored_path).is_file():
            raise MediaFileMissing(tutorial_id)

        if tutorial.captions_status == CaptionStatus.GENERATING:
            logger.warning(
                "Tutorial %s is already generating (attempt %d); superseding it",
                tutorial_id,
                tutorial.captions_attempt,
            )
        self.begin(session, tutorial)
        return tutorial

    def run(self, tutorial_id: str, stored_path: str, attempt: int) -> bool:
        """Attempt body. Never raises; failures end as ``failed``."""
        try:
            track = self._captioner.generate(Path(stored_path))
        except Exception:
            logger.exception("Caption attempt %d for tutorial %s failed", attempt, tutorial_id)
            return self.finish(tutorial_id, stored_path, attempt, CaptionStatus.FAILED)
        return self.finish(tutorial_id, stored_path, attempt, CaptionStatus.COMPLETED, track)

    def finish(
        self,
        tutorial_id: str,
        stored_path: str,
        attempt: int,
        status: CaptionStatus,
        track: Optional[CaptionTrack] = None,
    ) -> bool:
        """Single writer for attempt outcomes. Returns whether the outcome was applied.

        Caption files are placed only for the current attempt, so the track on
        disk always belongs to the attempt the row reports.
        """
        if status == CaptionStatus.COMPLETED and track is None:
            raise ValueError("a completed attempt needs its caption track")
        values = {"captions_status": status, "captions_url": None, "updated_at": utcnow()}

        with self._finish_lock, Session(self._engine) as session:
            tutorial = session.get(Tutorial, tutorial_id)
            if tutorial is None:
                logger.warning(
                    "Tutorial %s was deleted during caption attempt %d; discarding result",
                    tutorial_id,
                    attempt,
                )
                return False
            if tutorial.captions_attempt != attempt:
                self._log_stale(tutorial_id, attempt, status)
                return False

            if status == CaptionStatus.COMPLETED:
                try:
                    write_caption_track(stored_path, {".vtt": track.vtt, ".srt": track.srt})
                except OSError:
                    logger.exception("Writing captions for tutorial %s failed", tutorial_id)
                    values["captions_status"] = CaptionStatus.FAILED
                else:
                    values["captions_url"] = caption_url_for(tutorial.media_path)

            stmt = (
                update(Tutorial)
                .where(Tutorial.id == tutorial_id, Tutorial.captions_attempt == attempt)
                .values(**values)
            )
            result = session.connection().execute(stmt)
            session.commit()

        if result.rowcount != 1:
            # regenerated between the check and the write
            self._log_stale(tutorial_id, attempt, status)
            return False

        logger.info(
            "Captions %s for tutorial %s (attempt %d)", values["captions_status"].value, tutorial_id, attempt
        )
        return True

    @staticmethod
    def _log_stale(tutorial_id: str, attempt: int, status: CaptionStatus) -> None:
        logger.warning(
            "Discarding stale caption attempt %d for tutorial %s (%s)", attempt, tutorial_id, status.value
        )
