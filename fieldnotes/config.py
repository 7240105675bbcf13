"""
Environment-based configuration.

Values come from the process environment, with a .env file loaded first if present.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from fieldnotes.core.domain.query import Strategy
from fieldnotes.core.errors import ConfigError

LLM_PROVIDERS = ("gemini", "openai", "ollama")
EMBEDDING_PROVIDERS = ("openai", "local", "none")


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _choice_env(name: str, default: str, choices: tuple) -> str:
    value = (os.getenv(name) or default).strip().lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


@dataclass
class Settings:
    db_path: str = "fieldnotes.db"
    llm_provider: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash-lite"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    ollama_model: str = "gemma3:12b"
    ollama_url: str = "http://localhost:11434"
    embedding_provider: str = "openai"
    embedding_model: str = "BAAI/bge-m3"
    openai_embedding_model: str = "text-embedding-3-small"
    strategy: Strategy = Strategy.VECTOR
    search_limit: int = 5
    tag_candidate_limit: int = 10
    similarity_cache_size: int = 20
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)
        return cls(
            db_path=os.getenv("FIELDNOTES_DB_PATH", "fieldnotes.db"),
            llm_provider=_choice_env("LLM_PROVIDER", "gemini", LLM_PROVIDERS),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash-lite"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            ollama_model=os.getenv("OLLAMA_MODEL", "gemma3:12b"),
            ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
            embedding_provider=_choice_env("EMBEDDING_PROVIDER", "openai", EMBEDDING_PROVIDERS),
            embedding_model=os.getenv("EMBEDDING_MODEL", "BAAI/bge-m3"),
            openai_embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            strategy=Strategy(_choice_env("RETRIEVAL_STRATEGY", "vector", tuple(s.value for s in Strategy))),
            search_limit=_int_env("SEARCH_LIMIT", 5),
            tag_candidate_limit=_int_env("TAG_CANDIDATE_LIMIT", 10),
            similarity_cache_size=_int_env("SIMILARITY_CACHE_SIZE", 20),
            log_level=(os.getenv("LOG_LEVEL") or "WARNING").upper(),
        )
