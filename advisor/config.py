"""Configuration management for AdvisorEngine."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-mini")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1000"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
    STREAM_TIMEOUT_SECONDS: float = float(os.getenv("STREAM_TIMEOUT_SECONDS", "30"))
    MODEL_CONCURRENCY: int = int(os.getenv("MODEL_CONCURRENCY", "60"))

    # History Compression Configuration
    TOKEN_BUDGET: int = int(os.getenv("TOKEN_BUDGET", "8000"))
    SUMMARY_MODEL: str = os.getenv("SUMMARY_MODEL", "gpt-4.1-nano")
    SUMMARY_MAX_TOKENS: int = int(os.getenv("SUMMARY_MAX_TOKENS", "200"))
    SUMMARY_TEMPERATURE: float = float(os.getenv("SUMMARY_TEMPERATURE", "0.3"))

    # Assessment Configuration
    RATIONALE_MODEL: str = os.getenv("RATIONALE_MODEL", "gpt-3.5-turbo")
    RATIONALE_MAX_TOKENS: int = int(os.getenv("RATIONALE_MAX_TOKENS", "150"))

    # Retrieval Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "50"))
    EMBEDDING_BATCH_DELAY_SECONDS: float = float(
        os.getenv("EMBEDDING_BATCH_DELAY_SECONDS", "0")
    )
    EXPANSION_MODEL: str = os.getenv("EXPANSION_MODEL", "gpt-3.5-turbo")
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "3"))
    RETRIEVAL_MIN_SCORE: float = float(os.getenv("RETRIEVAL_MIN_SCORE", "0.3"))
    RETRIEVAL_TIMEOUT_SECONDS: float = float(
        os.getenv("RETRIEVAL_TIMEOUT_SECONDS", "2.0")
    )
    RESULT_CACHE_TTL_SECONDS: float = float(
        os.getenv("RESULT_CACHE_TTL_SECONDS", "300")
    )
    EMBEDDING_CACHE_TTL_SECONDS: float = float(
        os.getenv("EMBEDDING_CACHE_TTL_SECONDS", "3600")
    )
    CACHE_CLEANUP_INTERVAL_SECONDS: float = float(
        os.getenv("CACHE_CLEANUP_INTERVAL_SECONDS", "300")
    )

    # Vector Index Configuration
    VECTOR_INDEX_DIR: Path = Path(os.getenv("VECTOR_INDEX_DIR", "data/faiss"))
    VECTOR_METADATA_DB_PATH: Path = Path(
        os.getenv("VECTOR_METADATA_DB_PATH", "data/vector_metadata.db")
    )

    # Ingestion Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "3000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "300"))

    # Conversation Persistence
    CONVERSATION_DB_PATH: Path = Path(
        os.getenv("CONVERSATION_DB_PATH", "data/conversations.db")
    )

    # Rate Limiting Configuration
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
    REDIS_URL: str | None = os.getenv("REDIS_URL")

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "AdvisorEngine/1.0")
    API_TEST_HEADER_NAME: str | None = os.getenv("API_TEST_HEADER_NAME")
    API_TEST_HEADER_VALUE: str | None = os.getenv("API_TEST_HEADER_VALUE")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ConfigurationError: If OPENAI_API_KEY is not set, or the redis
                rate-limit backend is selected without a REDIS_URL.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ConfigurationError(msg)
        if cls.RATE_LIMIT_BACKEND == "redis" and not cls.REDIS_URL:
            msg = "REDIS_URL is required when RATE_LIMIT_BACKEND is 'redis'."
            raise ConfigurationError(msg)

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        if cls.API_TEST_HEADER_NAME and cls.API_TEST_HEADER_VALUE:
            headers[cls.API_TEST_HEADER_NAME] = cls.API_TEST_HEADER_VALUE

        return headers


config = Config()
