# config.py
import os
from dotenv import load_dotenv

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "concurso_docente_db")
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# AI provider: "grok" (xAI over httpx) or "openai" (official SDK)
AI_PROVIDER = os.getenv("AI_PROVIDER", "grok")
XAI_API_KEY = os.getenv("XAI_API_KEY")
XAI_API_URL = os.getenv("XAI_API_URL", "https://api.x.ai/v1/chat/completions")
XAI_MODEL = os.getenv("XAI_MODEL", "grok-3")
XAI_FALLBACK_MODEL = os.getenv("XAI_FALLBACK_MODEL", "grok-3-mini")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_FALLBACK_MODEL = os.getenv("OPENAI_FALLBACK_MODEL", "gpt-4o-mini")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "8000"))

# Progressive loading
INITIAL_BATCH_SIZE = int(os.getenv("INITIAL_BATCH_SIZE", "3"))
BACKGROUND_CHUNK_SIZE = int(os.getenv("BACKGROUND_CHUNK_SIZE", "4"))
BACKGROUND_BATCH_DELAY = float(os.getenv("BACKGROUND_BATCH_DELAY", "1.0"))
BACKGROUND_FAILURE_COOLDOWN = float(os.getenv("BACKGROUND_FAILURE_COOLDOWN", "2.0"))
MAX_CONSECUTIVE_FAILURES = int(os.getenv("MAX_CONSECUTIVE_FAILURES", "3"))

# Timed modes get this many seconds per question
SECONDS_PER_QUESTION = int(os.getenv("SECONDS_PER_QUESTION", "120"))

# Plan limits (overridable per user via custom_*_limit)
DEFAULT_DAILY_LIMIT = int(os.getenv("DEFAULT_DAILY_LIMIT", "1"))
DEFAULT_MONTHLY_LIMIT = int(os.getenv("DEFAULT_MONTHLY_LIMIT", "2"))
FREE_QUESTION_LIMIT = int(os.getenv("FREE_QUESTION_LIMIT", "5"))
PREMIUM_QUESTION_LIMIT = int(os.getenv("PREMIUM_QUESTION_LIMIT", "50"))
ANALYSIS_DAILY_LIMIT = int(os.getenv("ANALYSIS_DAILY_LIMIT", "1"))
