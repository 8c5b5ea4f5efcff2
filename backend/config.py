import os
from dotenv import load_dotenv

load_dotenv()

class Config:

    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    SUMMARY_MODEL = os.getenv("SUMMARY_MODEL", "gpt-4")
    SYNTHESIS_MODEL = os.getenv("SYNTHESIS_MODEL", "gpt-4-turbo-preview")
    TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    SUMMARY_TEMPERATURE = float(os.getenv("SUMMARY_TEMPERATURE", "0.3"))

    # Unstructured.io document partitioning
    UNSTRUCTURED_API_KEY = os.getenv("UNSTRUCTURED_API_KEY")
    UNSTRUCTURED_API_URL = os.getenv(
        "UNSTRUCTURED_API_URL", "https://api.unstructured.io/general/v0/general"
    )
    UNSTRUCTURED_LANGUAGES = [
        lang.strip() for lang in os.getenv("UNSTRUCTURED_LANGUAGES", "eng").split(",") if lang.strip()
    ]
    UNSTRUCTURED_TIMEOUT = int(os.getenv("UNSTRUCTURED_TIMEOUT", "120"))

    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "5001"))

    # Documents bucket
    MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", "uploads")
    STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "documents")
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5001").rstrip("/")
    ALLOWED_MIME_TYPES = (
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "audio/mpeg",
        "audio/mp4",
        "audio/wav",
    )

    # AWS S3 (optional upload storage)
    AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_S3_REGION = os.getenv("AWS_S3_REGION", "us-east-1")
    S3_ENABLED = os.getenv("S3_ENABLED", "false").lower() == "true"

    # URL intake
    URL_FETCH_TIMEOUT = int(os.getenv("URL_FETCH_TIMEOUT", "10"))
    SCRAPER_USER_AGENT = os.getenv(
        "SCRAPER_USER_AGENT", "Mozilla/5.0 (compatible; Nilavu Research Bot)"
    )

    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"

    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

    @classmethod
    def validate(cls):
        import logging as _logging
        _log = _logging.getLogger(__name__)
        if not os.getenv("OPENROUTER_API_KEY") and not cls.OPENAI_API_KEY:
            _log.warning(
                "Neither OPENROUTER_API_KEY nor OPENAI_API_KEY is set. "
                "Summaries, transcription and synthesis will not work without a provider key."
            )
        if not cls.UNSTRUCTURED_API_KEY:
            _log.warning(
                "UNSTRUCTURED_API_KEY is not set. PDF and DOCX files fall back to local "
                "extraction; PPTX files will not be extracted."
            )
        return True

    @classmethod
    def get_cors_origins(cls):
        cors_origins = os.getenv("CORS_ORIGINS")
        if cors_origins:
            return [origin.strip() for origin in cors_origins.split(",")]
        return cls.CORS_ORIGINS
