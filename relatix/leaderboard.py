"""
Leaderboard module - keeps the N highest scores in the document store.
"""

import logging

logger = logging.getLogger(__name__)

COLLECTION = "highscores"
MAX_SCORES = 10


def qualifies(top: list, score: int, limit: int = MAX_SCORES) -> bool:
    """Check if score qualifies for a board holding ``top`` (best first)."""
    if len(top) < limit:
        return True

    # Check if score beats the lowest score
    return score > top[-1]["score"]


def get_leaderboard(store, limit: int = MAX_SCORES) -> list:
    """Get the current leaderboard, best first."""
    return store.top(COLLECTION, "score", limit)


def submit_score(store, entry: dict, limit: int = MAX_SCORES) -> bool:
    """
    Offer a final score to the leaderboard.

    Below capacity the entry is simply added; on a full board it replaces
    the current minimum only if it scores strictly higher. Returns whether
    the entry made it onto the board.
    """
    top = get_leaderboard(store, limit)
    if not qualifies(top, entry["score"], limit):
        return False

    if len(top) < limit:
        store.add(COLLECTION, entry)
        logger.info("Leaderboard entry added for %s (%d)", entry["name"], entry["score"])
        return True

    lowest = top[-1]
    store.replace(COLLECTION, lowest["id"], entry)
    logger.info("Leaderboard: %s (%d) replaced %s (%d)",
                entry["name"], entry["score"], lowest.get("name"), lowest["score"])
    return True


def clear_leaderboard(store) -> int:
    """Remove every leaderboard entry."""
    removed = store.clear(COLLECTION)
    logger.warning("Leaderboard cleared (%d entries removed)", removed)
    return removed
