import os

from dotenv import load_dotenv

load_dotenv()

# --- Database ---
DATABASE_URL        = os.getenv("DATABASE_URL", "")
DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "opsync")
DB_USER             = os.environ.get("DB_USER", "postgres")
DB_PASSWORD         = os.environ.get("DB_PASSWORD", "")
SQLITE_PATH         = os.environ.get("SQLITE_PATH", "opsync.db")

IS_LOCAL_DB = (DB_HOST == "localhost") and not DATABASE_URL

# --- Reasoning backend (OpenAI-compatible chat completions, Groq by default) ---
LLM_BASE_URL        = os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
LLM_MODEL           = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
LLM_TIMEOUT         = float(os.getenv("LLM_TIMEOUT", "60"))
LLM_TEMPERATURE     = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_TOKENS      = int(os.getenv("LLM_MAX_TOKENS", "4096"))
LLM_RETRIES         = int(os.getenv("LLM_RETRIES", "2"))
MAX_ROUNDS          = int(os.getenv("MAX_ROUNDS", "5"))

# --- Agent behaviour ---
DEFAULT_OWNER_NICK  = os.getenv("DEFAULT_OWNER_NICK", "Mihir")

# --- Rate limiting (per caller, fixed window) ---
RATE_LIMIT_MAX_REQUESTS   = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# --- Cron ---
CRON_SECRET         = os.getenv("CRON_SECRET", "")


def get_llm_api_key() -> str:
    # read at call time: a missing key is a per-request configuration error
    return os.getenv("GROQ_API_KEY") or os.getenv("LLM_API_KEY") or ""
