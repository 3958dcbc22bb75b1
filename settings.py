"""
Study.AI - Settings
Environment-driven configuration (read once at import)
"""

import os

from dotenv import load_dotenv

load_dotenv(override=False)


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = env_str("GEMINI_MODEL", "gemini-2.5-flash")

# Flask
SECRET_KEY = env_str("FLASK_SECRET_KEY", "study-ai-dev-secret")
MAX_UPLOAD_MB = env_int("APP_MAX_UPLOAD_MB", 16)

# Admin gate
ADMIN_USER = env_str("STUDY_AI_ADMIN_USER", "admin")
ADMIN_PASS = env_str("STUDY_AI_ADMIN_PASS", "admin")

# Default site-owner metadata shown until the admin saves their own
OWNER_NAME = env_str("STUDY_AI_OWNER_NAME", "Study.AI Team")
OWNER_BIO = env_str(
    "STUDY_AI_OWNER_BIO",
    "Builders of Study.AI, bridging the gap between artificial intelligence and education.",
)
OWNER_IMAGE = env_str(
    "STUDY_AI_OWNER_IMAGE",
    "https://api.dicebear.com/7.x/avataaars/svg?seed=Felix",
)

# Limits
MAX_PDF_PAGES = env_int("APP_MAX_PDF_PAGES", 100)
MAX_CONTEXT_CHARS = env_int("APP_MAX_CONTEXT_CHARS", 500_000)
MAX_CHAT_CHARS = env_int("APP_MAX_CHAT_CHARS", 4000)
MAX_CHAT_HISTORY = env_int("APP_MAX_CHAT_HISTORY", 40)
MAX_TOPIC_CHARS = env_int("APP_MAX_TOPIC_CHARS", 300)
MAX_AVATAR_KB = env_int("APP_MAX_AVATAR_KB", 2048)

# Telemetry
TELEMETRY_PATH = env_str("APP_TELEMETRY_PATH", "telemetry.jsonl")
