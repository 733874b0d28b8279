# campus_tutorials/config.py
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    # DB
    DATABASE_URL: str = "sqlite:///./tutorials.db"

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    # Uploads
    UPLOAD_DIR: Path = BASE_DIR / "uploads"
    MAX_UPLOAD_MB: int = 500

    # AssemblyAI (caption generation)
    ASSEMBLYAI_API_KEY: str | None = None
    ASSEMBLYAI_ENDPOINT: str = "https://api.assemblyai.com"
    ASSEMBLYAI_TIMEOUT: int = 120
    CAPTIONS_LANGUAGE: str = "en"
    POLL_INTERVAL: float = 3.0
    POLL_MAX_WAIT: int = 1800
    CAPTION_WORKERS: int = 4  # threads running caption attempts

    # ffmpeg audio extraction before upload (smaller payload than the full video)
    CAPTIONS_EXTRACT_AUDIO: bool = True
    FFMPEG_BIN: str = "ffmpeg"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

settings = Settings()
