"""
Game session module - the per-player state machine behind a play-through.

A session walks a prepared queue of questions:

    idle -> playing -> (level-transition -> playing)* -> finished

Each question is answered once, graded, and then the player continues.
Timed questions carry a countdown stamped when the question is presented;
answers arriving after the countdown (plus a small grace for network lag)
are recorded as a timeout.
"""

import math
import threading
import time
import uuid
from collections import OrderedDict
from datetime import datetime, timezone

from relatix import quiz

IDLE = "idle"
PLAYING = "playing"
LEVEL_TRANSITION = "level-transition"
FINISHED = "finished"

TIMEOUT_ANSWER = "timeout"


class GameError(Exception):
    """Base class for invalid game operations."""
    status_code = 400


class InvalidState(GameError):
    status_code = 409


class AnswerAlreadyGiven(InvalidState):
    pass


class GameNotFound(GameError):
    status_code = 404


def _utc_now():
    return datetime.now(timezone.utc).isoformat()


class GameSession:
    """One play-through for one player."""

    def __init__(self, player, questions, timer_duration=30, timer_grace=2,
                 use_multiplier=False, clock=time.monotonic, now=_utc_now):
        self.player = player
        self.questions = questions
        self.timer_duration = timer_duration
        self.timer_grace = timer_grace
        self.use_multiplier = use_multiplier
        self._clock = clock
        self._now = now

        self.state = IDLE
        self.index = 0
        self.score = 0
        self.performance = []
        self.feedback = None
        self.presented_at = None
        self.saved = False
        self.session_id = None
        self.finished_at = None
        # Held by request handlers so a double-click cannot grade twice
        self.lock = threading.Lock()

    @property
    def difficulty(self):
        return self.player["difficulty"]

    def start(self):
        """Reset counters and begin (or replay) the queue."""
        if self.state not in (IDLE, FINISHED):
            raise InvalidState(f"Cannot start a game that is {self.state}")

        self.index = 0
        self.score = 0
        self.performance = []
        self.feedback = None
        self.saved = False
        self.session_id = None
        self.finished_at = None

        if not self.questions:
            self.state = FINISHED
            return

        self.state = PLAYING
        self._present()

    def _present(self):
        self.presented_at = self._clock()

    def current_question(self):
        if self.state in (PLAYING, LEVEL_TRANSITION) and self.index < len(self.questions):
            return self.questions[self.index]
        return None

    def is_timed(self):
        question = self.current_question()
        return question is not None and quiz.is_timed(question, self.difficulty)

    def elapsed(self):
        if self.presented_at is None:
            return 0.0
        return self._clock() - self.presented_at

    def remaining_seconds(self):
        """Whole seconds left on the countdown, or None for untimed questions."""
        if self.state != PLAYING or not self.is_timed():
            return None
        return max(0, math.ceil(self.timer_duration - self.elapsed()))

    def _require_open_question(self):
        if self.state != PLAYING:
            raise InvalidState(f"Cannot answer while the game is {self.state}")
        if self.feedback is not None:
            raise AnswerAlreadyGiven("This question has already been answered")
        return self.current_question()

    def _record(self, question, chosen, correct, timed_out=False):
        if correct:
            self.score += quiz.points_for(self.difficulty, self.use_multiplier)

        self.performance.append({
            "question_id": question["id"],
            "correct": correct,
            "chosen_answer": chosen,
        })
        self.feedback = {
            "correct": correct,
            "chosen_answer": chosen,
            "correct_answer": question["correct"],
            "explanation": question.get("explanation", ""),
            "timed_out": timed_out,
            "score": self.score,
        }
        return self.feedback

    def answer(self, text):
        """Grade the player's answer to the current question."""
        question = self._require_open_question()
        text = text or ""

        if self.is_timed() and self.elapsed() > self.timer_duration + self.timer_grace:
            return self._record(question, TIMEOUT_ANSWER, False, timed_out=True)

        return self._record(question, text, quiz.grade(question, text, self.difficulty))

    def expire(self, partial=""):
        """The countdown hit zero: grade whatever was typed so far."""
        question = self._require_open_question()
        if not self.is_timed():
            raise InvalidState("This question has no timer")

        if self.elapsed() > self.timer_duration + self.timer_grace:
            return self._record(question, TIMEOUT_ANSWER, False, timed_out=True)

        chosen = (partial or "").strip() or TIMEOUT_ANSWER
        correct = chosen != TIMEOUT_ANSWER and quiz.grade(question, chosen, self.difficulty)
        return self._record(question, chosen, correct, timed_out=True)

    def advance(self):
        """Continue after feedback, or resume after a level transition."""
        if self.state == LEVEL_TRANSITION:
            self.state = PLAYING
            self._present()
            return self.state

        if self.state != PLAYING:
            raise InvalidState(f"Cannot continue while the game is {self.state}")
        if self.feedback is None:
            raise InvalidState("Answer the current question before continuing")

        previous_level = self.questions[self.index]["level"]
        self.feedback = None
        self.index += 1

        if self.index >= len(self.questions):
            self.state = FINISHED
            self.presented_at = None
        elif self.questions[self.index]["level"] > previous_level:
            self.state = LEVEL_TRANSITION
            self.presented_at = None
        else:
            self._present()
        return self.state

    def result(self):
        """Final score and session log, only once the game is finished."""
        if self.state != FINISHED:
            raise InvalidState("The game is not finished yet")
        if self.finished_at is None:
            self.finished_at = self._now()

        final_score = {
            "name": self.player["name"],
            "avatar": self.player.get("avatar", ""),
            "score": self.score,
            "date": self.finished_at,
        }
        session = dict(final_score,
                       difficulty=self.difficulty,
                       performance=list(self.performance))
        return final_score, session

    def snapshot(self):
        """JSON-ready view of the session for the client."""
        question = self.current_question()
        return {
            "state": self.state,
            "question_number": min(self.index + 1, len(self.questions)),
            "total": len(self.questions),
            "score": self.score,
            "difficulty": self.difficulty,
            "level": question["level"] if question else None,
            "question": quiz.client_view(question) if self.state == PLAYING else None,
            "timed": self.is_timed(),
            "remaining_seconds": self.remaining_seconds(),
            "feedback": self.feedback,
            "saved": self.saved,
        }


class GameRegistry:
    """Live sessions keyed by an opaque id (oldest dropped past ``max_games``)."""

    def __init__(self, max_games=500):
        self.max_games = max_games
        self._games = OrderedDict()
        self._lock = threading.Lock()

    def create(self, session):
        game_id = uuid.uuid4().hex
        with self._lock:
            self._games[game_id] = session
            while len(self._games) > self.max_games:
                self._games.popitem(last=False)
        return game_id

    def get(self, game_id):
        with self._lock:
            session = self._games.get(game_id)
        if session is None:
            raise GameNotFound("Unknown or expired game")
        return session

    def discard(self, game_id):
        with self._lock:
            self._games.pop(game_id, None)

    def __len__(self):
        with self._lock:
            return len(self._games)
