"""Relatix configuration - loaded from environment variables."""

import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

PACKAGE_DIR = Path(__file__).resolve().parent
BASE_DIR = PACKAGE_DIR.parent

load_dotenv(BASE_DIR / ".env")


def _flag(name, default="0"):
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# Server
HOST = os.environ.get("RELATIX_HOST", "127.0.0.1")
PORT = int(os.environ.get("RELATIX_PORT", "5000"))
SECRET_KEY = os.environ.get("RELATIX_SECRET_KEY") or secrets.token_hex(32)
LOG_LEVEL = os.environ.get("RELATIX_LOG_LEVEL", "INFO")

# Teacher panel
ADMIN_PASSWORD = os.environ.get("RELATIX_ADMIN_PASSWORD", "270219")

# Document store: "json" (files under DATA_DIR) or "firestore"
STORE_BACKEND = os.environ.get("RELATIX_STORE", "json")
DATA_DIR = Path(os.environ.get("RELATIX_DATA_DIR", str(BASE_DIR / "data")))
FIREBASE_CREDENTIALS = os.environ.get("RELATIX_FIREBASE_CREDENTIALS", "")
FIREBASE_PROJECT_ID = os.environ.get("RELATIX_FIREBASE_PROJECT_ID", "")

# Game rules
QUESTIONS_FILE = Path(os.environ.get("RELATIX_QUESTIONS_FILE", str(PACKAGE_DIR / "questions.json")))
QUESTIONS_PER_GAME = int(os.environ.get("RELATIX_QUESTIONS_PER_GAME", "10"))
TIMED_QUESTION_DURATION = int(os.environ.get("RELATIX_TIMER_SECONDS", "30"))
TIMER_GRACE_SECONDS = int(os.environ.get("RELATIX_TIMER_GRACE", "2"))
USE_DIFFICULTY_MULTIPLIER = _flag("RELATIX_MULTIPLIER")
ADAPTIVE_QUESTIONS = _flag("RELATIX_ADAPTIVE")

# Leaderboard
HIGH_SCORE_LIMIT = int(os.environ.get("RELATIX_HIGH_SCORE_LIMIT", "10"))
HOME_SCORES_SHOWN = int(os.environ.get("RELATIX_HOME_SCORES", "5"))

MAX_NAME_LENGTH = 20

AVATARS = [
    "https://picsum.photos/seed/relatix-owl/100/100",
    "https://picsum.photos/seed/relatix-fox/100/100",
    "https://picsum.photos/seed/relatix-cat/100/100",
    "https://picsum.photos/seed/relatix-bear/100/100",
]


def as_dict():
    """Upper-case settings, ready for ``app.config.update``."""
    return {k: v for k, v in globals().items() if k.isupper()}
