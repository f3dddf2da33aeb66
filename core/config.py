from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # AI Generation (Groq, OpenAI-compatible)
    GROQ_API_KEY: str = Field("", description="Groq API key for flashcard and quiz generation")
    GROQ_BASE_URL: str = Field("https://api.groq.com/openai/v1", description="OpenAI-compatible API base URL")
    GROQ_MODEL: str = Field("llama-3.3-70b-versatile", description="Groq chat model to use")
    GROQ_TRANSCRIPTION_MODEL: str = Field("whisper-large-v3-turbo", description="Speech-to-text model")
    GROQ_TTS_MODEL: str = Field("playai-tts", description="Text-to-speech model")
    GROQ_TTS_VOICE: str = Field("Fritz-PlayAI", description="Text-to-speech voice")
    AI_REQUEST_TIMEOUT_SECONDS: float = 180.0

    # Generation defaults
    DEFAULT_NUM_FLASHCARDS: int = 10
    DEFAULT_NUM_QUIZ_QUESTIONS: int = 5
    MAX_ITEMS_PER_REQUEST: int = 50
    DEFAULT_DIFFICULTY: str = "Medium"

    # PDF Settings
    FILE_SIZE_LIMIT_MB: int = 5
    PDF_MAX_SIZE_MB: int = 10
    PDF_TIMEOUT_SECONDS: float = 30.0

    # Web search (DuckDuckGo Instant Answer API)
    SEARCH_API_URL: str = "https://api.duckduckgo.com/"
    SEARCH_TIMEOUT_SECONDS: float = 10.0
    SEARCH_MAX_CONTEXT_LENGTH: int = 2000
    SEARCH_MAX_RELATED_TOPICS: int = 5

    # Quiz Settings
    QUIZ_SHUFFLE_SEED: Optional[int] = Field(None, description="Seed for quiz shuffling; random when unset")

    # Export
    EXPORT_FILENAME: str = "flashzen_export.json"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: List[str] = ["*"]

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False

settings = Settings()
