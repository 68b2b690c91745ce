"""
Relatix - Relative Clause Quiz Game
A Flask app serving the game API, the shared leaderboard and the teacher panel.
"""

import argparse
import hmac
import logging
import os
import random
import threading
import webbrowser
from functools import wraps

from flask import (Blueprint, Flask, Response, current_app, jsonify,
                   render_template, request, session)
from waitress import serve

from relatix import adapt, config, leaderboard, quiz, sessions
from relatix.game import GameError, GameRegistry, GameSession, InvalidState
from relatix.store import StoreError, make_store

logger = logging.getLogger(__name__)

bp = Blueprint("relatix", __name__)


def create_app(overrides=None):
    """Build the Flask app; ``overrides`` replaces settings from config.py."""
    app = Flask(__name__)
    app.config.update(config.as_dict())
    if overrides:
        app.config.update(overrides)

    app.extensions["relatix.questions"] = quiz.load_questions(app.config["QUESTIONS_FILE"])
    app.extensions["relatix.store"] = app.config.get("STORE") or make_store(app.config)
    app.extensions["relatix.games"] = GameRegistry()
    app.extensions["relatix.rng"] = app.config.get("RNG") or random.Random()

    app.register_blueprint(bp)
    app.register_error_handler(GameError, _game_error)
    app.register_error_handler(StoreError, _store_error)
    return app


def _store():
    return current_app.extensions["relatix.store"]


def _games():
    return current_app.extensions["relatix.games"]


def _payload():
    return request.get_json(silent=True) or {}


def _no_cache(response):
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def _game_response(game, **extra):
    return _no_cache(jsonify(success=True, **extra, **game.snapshot()))


def _game_error(error):
    return jsonify({"success": False, "error": str(error)}), error.status_code


def _store_error(error):
    logger.exception("Document store error: %s", error)
    return jsonify({"success": False, "error": "The score database is unavailable"}), 502


# ========================================
# Pages
# ========================================

@bp.route('/')
def index():
    """Render the home page (name, avatar, difficulty, high scores)."""
    return render_template('index.html',
                           avatars=current_app.config["AVATARS"],
                           difficulties=quiz.DIFFICULTIES)


@bp.route('/admin')
def admin():
    """Render the teacher panel."""
    return render_template('admin.html')


# ========================================
# Leaderboard API
# ========================================

@bp.route('/api/leaderboard', methods=['GET'])
def get_scores():
    """Get the top of the leaderboard for the home page."""
    return jsonify({
        "success": True,
        "scores": leaderboard.get_leaderboard(_store(), current_app.config["HOME_SCORES_SHOWN"])
    })


# ========================================
# Game API
# ========================================

def _question_pool(difficulty, name):
    pool = quiz.questions_for_difficulty(current_app.extensions["relatix.questions"], difficulty)
    if not current_app.config["ADAPTIVE_QUESTIONS"]:
        return pool

    try:
        history = adapt.performance_history(sessions.sessions_for_player(_store(), name))
    except StoreError as e:
        logger.warning("Could not load history for %s, using the plain pool: %s", name, e)
        return pool
    return adapt.adapt_questions(pool, history)


@bp.route('/api/game/start', methods=['POST'])
def start_game():
    """Start a new game for a player at a difficulty tier."""
    data = _payload()
    cfg = current_app.config

    name = str(data.get('name') or '').strip()[:cfg["MAX_NAME_LENGTH"]]
    if not name:
        return jsonify({"success": False, "error": "Please enter your name"}), 400

    difficulty = data.get('difficulty', 'easy')
    if difficulty not in quiz.DIFFICULTIES:
        return jsonify({"success": False, "error": f"Unknown difficulty {difficulty!r}"}), 400

    pool = _question_pool(difficulty, name)
    if not pool:
        return jsonify({"success": False, "error": "No questions available for this difficulty"}), 400

    questions = quiz.select_questions(pool, cfg["QUESTIONS_PER_GAME"],
                                      current_app.extensions["relatix.rng"])
    player = {
        "name": name,
        "avatar": data.get('avatar') or cfg["AVATARS"][0],
        "difficulty": difficulty,
    }
    options = {}
    if cfg.get("CLOCK"):
        options["clock"] = cfg["CLOCK"]

    game = GameSession(player, questions,
                       timer_duration=cfg["TIMED_QUESTION_DURATION"],
                       timer_grace=cfg["TIMER_GRACE_SECONDS"],
                       use_multiplier=cfg["USE_DIFFICULTY_MULTIPLIER"],
                       **options)
    game.start()
    game_id = _games().create(game)
    logger.info("Game %s started for %s (%s, %d questions)", game_id, name, difficulty, len(questions))

    return _game_response(game,
                          game_id=game_id,
                          levels=quiz.levels_for_difficulty(current_app.extensions["relatix.questions"],
                                                            difficulty))


@bp.route('/api/game/<game_id>', methods=['GET'])
def game_state(game_id):
    """Current state of a game."""
    return _game_response(_games().get(game_id))


@bp.route('/api/game/<game_id>/answer', methods=['POST'])
def answer_question(game_id):
    """Grade an answer to the current question."""
    answer = _payload().get('answer')
    if not isinstance(answer, str):
        return jsonify({"success": False, "error": "Missing answer"}), 400

    game = _games().get(game_id)
    with game.lock:
        game.answer(answer)
        return _game_response(game)


@bp.route('/api/game/<game_id>/timeout', methods=['POST'])
def question_timeout(game_id):
    """The client countdown expired; grade whatever was typed."""
    partial = _payload().get('answer') or ''
    game = _games().get(game_id)
    with game.lock:
        game.expire(str(partial))
        return _game_response(game)


@bp.route('/api/game/<game_id>/continue', methods=['POST'])
def continue_game(game_id):
    """Move past feedback or a level transition."""
    game = _games().get(game_id)
    with game.lock:
        game.advance()
        return _game_response(game)


@bp.route('/api/game/<game_id>/save', methods=['POST'])
def save_score(game_id):
    """Record the session log, then offer the score to the leaderboard."""
    game = _games().get(game_id)
    store = _store()

    with game.lock:
        if game.saved:
            raise InvalidState("This score has already been saved")
        final_score, session_doc = game.result()

        try:
            # A retry after a leaderboard failure must not log the session twice
            if game.session_id is None:
                game.session_id = sessions.record_session(store, session_doc)
            made_leaderboard = leaderboard.submit_score(store, final_score,
                                                        current_app.config["HIGH_SCORE_LIMIT"])
        except StoreError as e:
            logger.exception("Error saving score for game %s", game_id)
            return jsonify({
                "success": False,
                "error": f"Could not save your score. Details: {e}"
            }), 502

        game.saved = True

    if made_leaderboard:
        title, message = "New High Score!", "You made it to the global leaderboard!"
    else:
        title, message = "Score Saved!", "Your results are saved for the teacher panel. Good job!"

    return _game_response(game,
                          made_leaderboard=made_leaderboard,
                          title=title,
                          message=message)


# ========================================
# Teacher Panel API
# ========================================

def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not session.get("is_admin"):
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return view(*args, **kwargs)
    return wrapper


@bp.route('/api/admin/login', methods=['POST'])
def admin_login():
    """Unlock the teacher panel for this browser session."""
    password = str(_payload().get('password') or '')
    expected = current_app.config["ADMIN_PASSWORD"]

    if not hmac.compare_digest(password.encode('utf-8'), expected.encode('utf-8')):
        logger.warning("Failed teacher panel login from %s", request.remote_addr)
        return jsonify({"success": False, "error": "Incorrect password. Please try again."}), 401

    session["is_admin"] = True
    logger.info("Teacher panel unlocked from %s", request.remote_addr)
    return jsonify({"success": True})


@bp.route('/api/admin/logout', methods=['POST'])
def admin_logout():
    session.pop("is_admin", None)
    return jsonify({"success": True})


@bp.route('/api/admin/sessions', methods=['GET'])
@admin_required
def admin_sessions():
    """All recorded player sessions, newest first."""
    recorded = sessions.list_sessions(_store())
    return jsonify({"success": True, "sessions": recorded, "total": len(recorded)})


@bp.route('/api/admin/export.csv', methods=['GET'])
@admin_required
def admin_export():
    """Download every session as CSV."""
    body = sessions.export_csv(sessions.list_sessions(_store()))
    return Response(
        body,
        mimetype='text/csv',
        headers={"Content-Disposition": f"attachment; filename={sessions.CSV_FILENAME}"}
    )


@bp.route('/api/admin/leaderboard/clear', methods=['POST'])
@admin_required
def admin_clear_leaderboard():
    """Wipe the entire leaderboard."""
    removed = leaderboard.clear_leaderboard(_store())
    return jsonify({"success": True, "removed": removed, "scores": []})


def open_browser(url):
    """Open the browser after a short delay."""
    webbrowser.open(url)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the Relatix quiz server")
    parser.add_argument("--host", default=config.HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    parser.add_argument("--debug", action="store_true", help="use the Flask development server")
    parser.add_argument("--open-browser", action="store_true", help="open the game in a browser")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = create_app()
    url = f"http://{args.host}:{args.port}"

    print("Relatix starting...")
    print(f"Process ID: {os.getpid()}")
    print(f"Store backend: {app.config['STORE_BACKEND']}")
    print(f"Questions: {len(app.extensions['relatix.questions'])}")
    print()

    if args.open_browser:
        threading.Timer(1.5, open_browser, args=(url,)).start()

    if args.debug:
        print(f"Starting development server at {url}")
        app.run(host=args.host, port=args.port, debug=True)
    else:
        print(f"Starting server at {url}")
        print("Press Ctrl+C to stop")
        serve(app, host=args.host, port=args.port, threads=4)


if __name__ == '__main__':
    main()
