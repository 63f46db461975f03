# backend/pagecast/config.py
from typing import Literal, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./pagecast.db"  # Default if not in .env

    # Storage Paths
    STORAGE_PATH: Path = Path("storage")
    LOGS_PATH: Path | None = None  # Will be set based on STORAGE_PATH

    # Text extraction
    EXTRACTOR_BACKEND: Literal["llamaparse", "pypdf"] = "llamaparse"
    LLAMA_CLOUD_API_KEY: Optional[str] = None
    LLAMA_CLOUD_BASE_URL: str = "https://api.cloud.llamaindex.ai"
    LLAMA_PARSE_POLL_INTERVAL_SECONDS: float = 2.0
    LLAMA_PARSE_MAX_POLLS: int = 150

    # Speech synthesis
    ELEVENLABS_API_KEY: Optional[str] = None
    ELEVENLABS_BASE_URL: str = "https://api.elevenlabs.io"
    ELEVENLABS_MODEL_ID: str = "eleven_multilingual_v2"
    ELEVENLABS_OUTPUT_FORMAT: str = "mp3_44100_128"
    DEFAULT_VOICE_ID: str = "my2nUXZc8WyNijMOfltw"

    # Object storage
    STORAGE_BACKEND: Literal["s3", "local"] = "s3"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "auto"
    AWS_ENDPOINT: str = "https://fly.storage.tigris.dev"
    AWS_S3_BUCKET: Optional[str] = None
    AWS_PUBLIC_BASE_URL: Optional[str] = None

    # Generation pipeline
    REQUEST_TIMEOUT_SECONDS: float = 60.0
    GENERATION_CONCURRENCY: int = 4
    JOB_MAX_ATTEMPTS: int = 3
    RETRY_MIN_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 10.0
    RETRY_FACTOR: float = 2.0
    RETRY_RANDOMIZE: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def model_post_init(self, __context) -> None:
        """Post initialization hook to set derived paths"""
        # Convert STORAGE_PATH to Path if it's a string
        if isinstance(self.STORAGE_PATH, str):
            self.STORAGE_PATH = Path(self.STORAGE_PATH)

        # Set derived paths if not explicitly provided
        self.LOGS_PATH = Path(self.LOGS_PATH) if self.LOGS_PATH else self.STORAGE_PATH / "logs"

        # Create directories
        self.create_storage_dirs()

    @property
    def AUDIO_PATH(self) -> Path:
        """Local audio directory; keys start with `audio/` under STORAGE_PATH"""
        return self.STORAGE_PATH / "audio"

    def create_storage_dirs(self) -> None:
        """Create necessary storage directories if they don't exist"""
        for path in [self.STORAGE_PATH, self.AUDIO_PATH, self.LOGS_PATH]:
            path.mkdir(parents=True, exist_ok=True)

settings = Settings()
