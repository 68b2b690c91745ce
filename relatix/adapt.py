"""
Question adaptation - repeat the questions a player has got wrong before.
"""


def missed_question_ids(performance: list) -> list:
    """Ids of incorrectly answered questions, first occurrence order, no repeats."""
    seen = []
    for record in performance:
        if not record.get("correct") and record.get("question_id") not in seen:
            seen.append(record.get("question_id"))
    return seen


def adapt_questions(questions: list, performance: list) -> list:
    """
    Return ``questions`` with every previously missed question appended once
    more, so a random draw is more likely to pick it.
    """
    missed = set(missed_question_ids(performance))
    problematic = [q for q in questions if q["id"] in missed]
    return questions + problematic


def performance_history(sessions: list) -> list:
    """All performance records across a player's past sessions."""
    history = []
    for session in sessions:
        history.extend(session.get("performance") or [])
    return history
