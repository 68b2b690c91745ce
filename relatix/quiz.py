"""
Quiz logic module - handles question bank loading, per-difficulty selection,
option shuffling and answer grading.
"""

import hashlib
import json
import logging
import random
import re
from pathlib import Path

logger = logging.getLogger(__name__)

DIFFICULTIES = ("easy", "medium", "hard")
LEVELS = (1, 2, 3)
QUESTION_TYPES = (
    "multiple-choice",
    "fill-in-the-blank",
    "true-false",
    "timed-choice",
    "sentence-completion",
)
# Types answered by picking one of the listed options
CHOICE_TYPES = ("multiple-choice", "fill-in-the-blank", "true-false", "timed-choice")

POINTS_PER_CORRECT = 10
DIFFICULTY_MULTIPLIERS = {"easy": 1, "medium": 2, "hard": 3}

_STRICT_STRIP = re.compile(r"[.,'\"]")


class QuestionBankError(Exception):
    """Raised when the question bank is missing or malformed."""


def get_question_hash(question_text):
    """Generate an 8-character MD5 hash of the question text."""
    return hashlib.md5(question_text.encode('utf-8')).hexdigest()[:8]


def _validate(raw, position):
    where = f"question #{position}"
    if not isinstance(raw, dict):
        raise QuestionBankError(f"{where}: expected an object")

    text = raw.get("text")
    if not isinstance(text, str) or not text.strip():
        raise QuestionBankError(f"{where}: missing text")

    q_type = raw.get("type")
    if q_type not in QUESTION_TYPES:
        raise QuestionBankError(f"{where}: unknown type {q_type!r}")

    difficulty = raw.get("difficulty")
    if difficulty not in DIFFICULTIES:
        raise QuestionBankError(f"{where}: unknown difficulty {difficulty!r}")

    level = raw.get("level")
    if type(level) is not int or level not in LEVELS:
        raise QuestionBankError(f"{where}: level must be one of {LEVELS}")

    correct = raw.get("correct")
    if not isinstance(correct, str) or not correct.strip():
        raise QuestionBankError(f"{where}: missing correct answer")

    options = raw.get("options", [])
    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        raise QuestionBankError(f"{where}: options must be a list of strings")
    if q_type in CHOICE_TYPES:
        if len(options) < 2:
            raise QuestionBankError(f"{where}: choice questions need at least two options")
        if correct not in options:
            raise QuestionBankError(f"{where}: correct answer is not among the options")

    return {
        "id": raw.get("id") or get_question_hash(text),
        "level": level,
        "type": q_type,
        "text": text,
        "options": list(options),
        "correct": correct,
        "difficulty": difficulty,
        "explanation": raw.get("explanation", ""),
    }


def load_questions(filepath) -> list:
    """Load and validate the question bank from a JSON file."""
    filepath = Path(filepath)
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            raw_questions = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        raise QuestionBankError(f"Error loading questions from {filepath}: {e}") from e

    if not isinstance(raw_questions, list):
        raise QuestionBankError(f"{filepath}: expected a list of questions")

    questions = [_validate(q, i) for i, q in enumerate(raw_questions, start=1)]

    seen = set()
    for q in questions:
        if q["id"] in seen:
            raise QuestionBankError(f"duplicate question id {q['id']!r}")
        seen.add(q["id"])

    logger.info("Loaded %d questions from %s", len(questions), filepath)
    return questions


def questions_for_difficulty(questions: list, difficulty: str) -> list:
    """Return the static bank partition for one difficulty tier."""
    return [q for q in questions if q["difficulty"] == difficulty]


def levels_for_difficulty(questions: list, difficulty: str) -> list:
    """Sorted distinct levels present in a difficulty tier."""
    return sorted({q["level"] for q in questions_for_difficulty(questions, difficulty)})


def select_questions(questions: list, count: int, rng=None) -> list:
    """
    Pick a shuffled sample of at most ``count`` distinct questions.

    The sample is grouped by level (shuffled order kept inside a level) and
    every choice question gets its own shuffled copy of the options.
    """
    rng = rng or random.Random()
    if count <= 0:
        return []

    question_pool = questions.copy()
    rng.shuffle(question_pool)

    # A weighted pool may list a question more than once; keep the first draw
    picked = []
    seen = set()
    for q in question_pool:
        if q["id"] in seen:
            continue
        seen.add(q["id"])
        picked.append(q)
        if len(picked) == count:
            break

    selected = sorted(picked, key=lambda q: q["level"])

    prepared = []
    for q in selected:
        options = q["options"].copy()
        if q["type"] != "true-false":
            rng.shuffle(options)
        prepared.append({**q, "options": options})

    return prepared


def client_view(question: dict) -> dict:
    """The question as sent to the browser - no correct answer."""
    return {
        "id": question["id"],
        "level": question["level"],
        "type": question["type"],
        "text": question["text"],
        "options": question["options"],
    }


def is_timed(question: dict, difficulty: str) -> bool:
    """Timed-choice questions always run a countdown; sentence completion only on hard."""
    if question["type"] == "timed-choice":
        return True
    return question["type"] == "sentence-completion" and difficulty == "hard"


def is_strict(question: dict, difficulty: str) -> bool:
    """Full-sentence answers ignore punctuation and quotes."""
    return question["type"] == "sentence-completion" and difficulty == "hard"


def normalize(text: str, strict: bool = False) -> str:
    normalized = (text or "").strip().lower()
    if strict:
        normalized = _STRICT_STRIP.sub("", normalized)
    return normalized


def grade(question: dict, answer: str, difficulty: str) -> bool:
    """Check a typed or chosen answer against the question's correct answer."""
    strict = is_strict(question, difficulty)
    return normalize(answer, strict) == normalize(question["correct"], strict)


def points_for(difficulty: str, use_multiplier: bool = False) -> int:
    if not use_multiplier:
        return POINTS_PER_CORRECT
    return POINTS_PER_CORRECT * DIFFICULTY_MULTIPLIERS[difficulty]
