# campus_tutorials/main.py
# FastAPI application entry point

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, BackgroundTasks, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from typing import Optional, List
from pathlib import Path
from uuid import uuid4

from sqlmodel import select, Session

from .captions import AssemblyAICaptioner
from .config import settings
from .db import engine, init_db, get_session
from .files import (
    PDF_EXTENSION,
    VIDEO_EXTENSIONS,
    UploadTooLarge,
    caption_path_for,
    remove_tutorial_files,
    safe_unlink,
    save_upload,
    stored_name,
)
from .logger import get_logger, setup_logger
from .models import CaptionStatus, Tutorial, TutorialType, utcnow
from .schemas import (
    CaptionStatusOut,
    MessageOut,
    RegenerateOut,
    TutorialCreated,
    TutorialOut,
    TutorialUpdate,
    TutorialUpdated,
    ViewsOut,
    visible_captions_url,
)
from .workflow import CaptionWorker, CaptionsNotSupported, MediaFileMissing, TutorialNotFound

logger = get_logger(__name__)

# -------------------------------------------------------------------
# Directories
# -------------------------------------------------------------------
UPLOAD_DIR = Path(settings.UPLOAD_DIR)
UPLOAD_DIR.mkdir(exist_ok=True, parents=True)
(UPLOAD_DIR / "tutorials").mkdir(exist_ok=True)

TUTORIALS_URL_PREFIX = "/uploads/tutorials"

# -------------------------------------------------------------------
# FastAPI & CORS
# -------------------------------------------------------------------
app = FastAPI(title="Campus Tutorials API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# uploaded videos, PDFs and caption tracks are served as-is
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")

@app.on_event("startup")
def on_startup():
    setup_logger(settings.LOG_LEVEL)
    init_db()
    app.state.caption_worker = CaptionWorker(
        AssemblyAICaptioner.from_settings(settings), engine, max_workers=settings.CAPTION_WORKERS
    )
    if not settings.ASSEMBLYAI_API_KEY:
        logger.warning("ASSEMBLYAI_API_KEY is not set; caption attempts will fail")
    logger.info("Uploads: %s  captions language: %s", UPLOAD_DIR, settings.CAPTIONS_LANGUAGE)

@app.on_event("shutdown")
def on_shutdown():
    worker = getattr(app.state, "caption_worker", None)
    if worker is not None:
        worker.shutdown()

@app.get("/health")
def health():
    return {"ok": True, "time": utcnow().isoformat()}

# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_tutorials_dir() -> Path:
    return UPLOAD_DIR / "tutorials"

def get_caption_worker(request: Request) -> CaptionWorker:
    return request.app.state.caption_worker

# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _get_tutorial_or_404(tutorial_id: str, session: Session) -> Tutorial:
    tutorial = session.get(Tutorial, tutorial_id)
    if not tutorial:
        raise HTTPException(status_code=404, detail="Tutorial not found")
    return tutorial

def _resolve_type(ext: str, requested: Optional[str]) -> TutorialType:
    """A .pdf upload is always a pdf tutorial; anything else must be a video file."""
    if ext == PDF_EXTENSION:
        return TutorialType.PDF
    if ext not in VIDEO_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only video and PDF files are allowed")
    if requested and requested != TutorialType.VIDEO.value:
        raise HTTPException(status_code=400, detail=f"A {ext} file cannot be a {requested} tutorial")
    return TutorialType.VIDEO

# -------------------------------------------------------------------
# Routes: tutorials
# -------------------------------------------------------------------

# Upload a tutorial; videos start caption generation in the background
@app.post("/api/tutorials", response_model=TutorialCreated, status_code=201)
def create_tutorial(
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    course: str = Form(...),
    type_: Optional[str] = Form(None, alias="type"),
    description: str = Form(""),
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    tutorials_dir: Path = Depends(get_tutorials_dir),
    worker: CaptionWorker = Depends(get_caption_worker),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    ext = Path(file.filename).suffix.lower()
    tutorial_type = _resolve_type(ext, type_)

    name = stored_name(file.filename)
    dest = tutorials_dir / name
    try:
        size = save_upload(file.file, dest, settings.MAX_UPLOAD_MB * 1024 * 1024)
    except UploadTooLarge as e:
        raise HTTPException(status_code=413, detail=str(e))

    tutorial = Tutorial(
        id=str(uuid4()),
        title=title,
        course=course,
        type=tutorial_type,
        description=description,
        file_name=file.filename,
        media_path=f"{TUTORIALS_URL_PREFIX}/{name}",
        stored_path=str(dest.resolve()),
        file_size=size,
    )
    try:
        if tutorial.is_video:
            # record is committed as `generating` before anything is dispatched
            worker.begin(session, tutorial)
        else:
            session.add(tutorial)
            session.commit()
            session.refresh(tutorial)
    except Exception:
        logger.exception("Saving tutorial %s failed; removing %s", tutorial.id, dest)
        safe_unlink(dest)
        raise

    logger.info("Tutorial uploaded: %s (%s, %d bytes)", tutorial.id, tutorial.type.value, size)
    created = TutorialCreated(
        message="Tutorial uploaded successfully",
        tutorial=TutorialOut.from_tutorial(tutorial),
        captions_generating=tutorial.is_video,
    )
    if tutorial.is_video:
        worker.schedule(background_tasks, tutorial)
    return created

# List tutorials, newest first
@app.get("/api/tutorials", response_model=List[TutorialOut])
def list_tutorials(
    course: Optional[str] = None,
    type_: Optional[TutorialType] = Query(None, alias="type"),
    session: Session = Depends(get_session),
):
    stmt = select(Tutorial).order_by(Tutorial.created_at.desc())
    if course:
        stmt = stmt.where(Tutorial.course == course)
    if type_:
        stmt = stmt.where(Tutorial.type == type_)
    return [TutorialOut.from_tutorial(t) for t in session.exec(stmt).all()]

@app.get("/api/tutorials/{tutorial_id}", response_model=TutorialOut)
def get_tutorial(tutorial_id: str, session: Session = Depends(get_session)):
    return TutorialOut.from_tutorial(_get_tutorial_or_404(tutorial_id, session))

# Metadata only; media and caption fields are never touched here
@app.put("/api/tutorials/{tutorial_id}", response_model=TutorialUpdated)
def update_tutorial(tutorial_id: str, body: TutorialUpdate, session: Session = Depends(get_session)):
    tutorial = _get_tutorial_or_404(tutorial_id, session)

    tutorial.title = body.title or tutorial.title
    tutorial.course = body.course or tutorial.course
    tutorial.description = body.description or tutorial.description
    tutorial.duration = body.duration or tutorial.duration
    tutorial.updated_at = utcnow()
    session.add(tutorial)
    session.commit()
    session.refresh(tutorial)

    return TutorialUpdated(message="Tutorial updated successfully", tutorial=TutorialOut.from_tutorial(tutorial))

@app.post("/api/tutorials/{tutorial_id}/view", response_model=ViewsOut)
def count_view(tutorial_id: str, session: Session = Depends(get_session)):
    tutorial = _get_tutorial_or_404(tutorial_id, session)
    tutorial.views += 1
    session.add(tutorial)
    session.commit()
    return ViewsOut(views=tutorial.views)

# Deletes the record, the media file and every caption-track sibling
@app.delete("/api/tutorials/{tutorial_id}", response_model=MessageOut)
def delete_tutorial(tutorial_id: str, session: Session = Depends(get_session)):
    tutorial = _get_tutorial_or_404(tutorial_id, session)

    removed = remove_tutorial_files(tutorial.stored_path)
    session.delete(tutorial)
    session.commit()

    logger.info("Tutorial deleted: %s (%d files removed)", tutorial_id, len(removed))
    return MessageOut(message="Tutorial deleted successfully")

# -------------------------------------------------------------------
# Routes: captions
# -------------------------------------------------------------------

# Pure read, safe to poll
@app.get("/api/tutorials/{tutorial_id}/captions/status", response_model=CaptionStatusOut)
def get_caption_status(tutorial_id: str, session: Session = Depends(get_session)):
    tutorial = _get_tutorial_or_404(tutorial_id, session)
    return CaptionStatusOut(status=tutorial.captions_status, captions_url=visible_captions_url(tutorial))

@app.post("/api/tutorials/{tutorial_id}/captions/regenerate", response_model=RegenerateOut)
def regenerate_captions(
    tutorial_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    worker: CaptionWorker = Depends(get_caption_worker),
):
    try:
        tutorial = worker.regenerate(session, tutorial_id)
    except (TutorialNotFound, MediaFileMissing) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CaptionsNotSupported as e:
        raise HTTPException(status_code=400, detail=str(e))

    started = RegenerateOut(message="Caption generation started", status=tutorial.captions_status)
    worker.schedule(background_tasks, tutorial)
    return started

# WebVTT download (the same file is also reachable under /uploads)
@app.get("/api/tutorials/{tutorial_id}/captions")
def download_captions(tutorial_id: str, session: Session = Depends(get_session)):
    tutorial = _get_tutorial_or_404(tutorial_id, session)
    if tutorial.captions_status != CaptionStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Captions are not ready")

    path = caption_path_for(tutorial.stored_path)
    if not path.exists():
        raise HTTPException(status_code=404, detail="Caption file not found")
    return FileResponse(path, filename=path.name, media_type="text/vtt")
