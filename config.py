import os
import tempfile
from dotenv import load_dotenv
load_dotenv()


def _flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///callnotes.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "./storage/audio")
    S3_ENDPOINT = os.getenv("S3_ENDPOINT")
    S3_REGION = os.getenv("S3_REGION")
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")

    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com")
    OPENAI_TRANSCRIPTION_MODEL = os.getenv("OPENAI_TRANSCRIPTION_MODEL", "gpt-4o-mini-transcribe")
    OPENAI_TRANSLATION_MODEL = os.getenv("OPENAI_TRANSLATION_MODEL", "gpt-4o-mini")
    OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "60"))
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL")
    OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
    OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "60"))

    AUDIO_MAX_DURATION_SECONDS = int(os.getenv("AUDIO_MAX_DURATION_SECONDS", "120"))

    RETRY_QUEUE_KEY = os.getenv("RETRY_QUEUE_KEY", "callnotes:retry-jobs")
    RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
    # False: run the pipeline inside the upload request; True: hand it to the retry queue
    RETRY_ASYNC_ON_UPLOAD = _flag("RETRY_ASYNC_ON_UPLOAD")
    RETRY_WORKER_ENABLED = _flag("RETRY_WORKER_ENABLED", "true")
    RETRY_WORKER_INTERVAL_SECONDS = float(os.getenv("RETRY_WORKER_INTERVAL_SECONDS", "2"))
    RETRY_WORKER_BATCH_SIZE = int(os.getenv("RETRY_WORKER_BATCH_SIZE", "5"))
    # Prometheus exporter port for the standalone retry worker; unset disables it
    METRICS_PORT = os.getenv("METRICS_PORT")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REDIS_URL = "redis://localhost:6379/15"
    STORAGE_BACKEND = "local"
    LOCAL_STORAGE_DIR = os.path.join(tempfile.gettempdir(), "callnotes-test-audio")
    OPENAI_API_KEY = None
    OLLAMA_BASE_URL = None
    RETRY_MAX_ATTEMPTS = 3
    RETRY_ASYNC_ON_UPLOAD = False
    RETRY_WORKER_ENABLED = False
