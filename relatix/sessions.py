"""
Session log module - one document per finished play-through, plus the
teacher panel's CSV export.
"""

import csv
import io
import logging

logger = logging.getLogger(__name__)

COLLECTION = "sessions"

CSV_HEADERS = ['PlayerName', 'PlayerAvatar', 'FinalScore', 'Date',
               'QuestionID', 'Correct', 'ChosenAnswer']
CSV_FILENAME = "relatix_player_data.csv"


def record_session(store, session: dict) -> str:
    """Append a session (name, avatar, score, date, difficulty, performance)."""
    session_id = store.add(COLLECTION, session)
    logger.info("Session %s recorded for %s: %d points over %d answers",
                session_id, session["name"], session["score"], len(session["performance"]))
    return session_id


def list_sessions(store) -> list:
    """All recorded sessions, newest first."""
    return store.all(COLLECTION, order_by="date", descending=True)


def sessions_for_player(store, name: str) -> list:
    return store.where(COLLECTION, "name", name)


def export_csv(sessions: list) -> str:
    """
    Flatten sessions into CSV: one row per answered question, or a single
    row with empty question columns for a session without answers.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADERS)

    for session in sessions:
        base = [session.get("name", ""), session.get("avatar", ""),
                session.get("score", 0), session.get("date", "")]
        performance = session.get("performance") or []
        if not performance:
            writer.writerow(base + ['', '', ''])
            continue
        for perf in performance:
            writer.writerow(base + [
                perf.get("question_id", ""),
                "true" if perf.get("correct") else "false",
                perf.get("chosen_answer", ""),
            ])

    return buffer.getvalue()
