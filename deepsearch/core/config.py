"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_ROOT = Path(__file__).resolve().parent.parent.parent

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Relational store (SQLite file in the project root unless DATABASE_URL is set)
DATABASE_URL: str = (
    os.getenv("DATABASE_URL", "").strip() or f"sqlite:///{_ROOT / 'deepsearch.db'}"
)

# Auth: session token comes from "Authorization: Bearer <token>" or this cookie
SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "session_token").strip() or "session_token"
SESSION_TTL_DAYS: int = int(os.getenv("SESSION_TTL_DAYS", "30"))

# Per-user requests per UTC day (admins are exempt)
DAILY_REQUEST_LIMIT: int = int(os.getenv("DAILY_REQUEST_LIMIT", "50"))

# Chat titles are derived from the latest user message
MAX_TITLE_LENGTH: int = 255
DEFAULT_CHAT_TITLE: str = "New chat"

# OpenAI (agent LLM)
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)
AGENT_MAX_TOKENS: int = int(os.getenv("AGENT_MAX_TOKENS", "1024"))

# Max model steps per request (each tool round-trip is one step)
MAX_STEPS: int = 10

# Serper web search API
SERPER_API_KEY: str = os.getenv("SERPER_API_KEY", "").strip()
SERPER_URL: str = os.getenv("SERPER_URL", "https://google.serper.dev/search").strip()
SEARCH_RESULT_COUNT: int = 10

# API timeouts (seconds)
LLM_API_TIMEOUT: float = 60.0
SEARCH_API_TIMEOUT: float = 15.0
