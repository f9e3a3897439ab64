#!/usr/bin/env python3
"""
ScoreMate Web - JSON API for the snooker score tracker
Accounts, owner-scoped matches, scoreboard photo import, statistics and CSV
export over HTTP.
"""

import argparse
import logging
import os
import threading
from contextlib import contextmanager
from datetime import date
from functools import wraps
from typing import Dict, Optional, Tuple

from flask import Flask, jsonify, request, session, Response
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

import database
import scoremate
from gemini_client import GeminiAuthError
from app.models import Match, parse_timestamp
from app.services import (
    ExportService, ExtractionError, ImportService, MatchNotFoundError,
    MatchService, StatsService, ValidationService,
)
from app.services.export_service import export_filename, frame_rows

# Initialize logging early so database module logs are captured
log_level = os.getenv('SCOREMATE_LOG_LEVEL', 'INFO')
scoremate_logger = scoremate.setup_logging(log_level)
web_logger = logging.getLogger('scoremate.web')
web_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/scoremate_web.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    web_logger.addHandler(fh)
except OSError:
    web_logger.warning('Could not create log file handler')

config: Dict = scoremate.load_config(os.getenv('SCOREMATE_CONFIG', 'config.json'))

# Tables are created on first use so the module imports without a database
DB_AVAILABLE = False


def ensure_db_available() -> bool:
    """Try to (re)initialize DB if it was previously unavailable."""
    global DB_AVAILABLE
    if DB_AVAILABLE:
        return True
    try:
        ok = database.init_db()
        DB_AVAILABLE = bool(ok)
        if DB_AVAILABLE:
            web_logger.info('Database initialized successfully')
        return DB_AVAILABLE
    except Exception as e:
        web_logger.exception('Database init failed: %s', e)
        return False


app = Flask(__name__)
app.secret_key = config.get('secret_key') or os.urandom(24)
app.config['MAX_CONTENT_LENGTH'] = 64 * 1024 * 1024

_match_service = MatchService(database)
_stats_service = StatsService()
_validation_service = ValidationService()
_export_service = ExportService()

# Built on first use; needs a Gemini API key
extraction_service = None
_extraction_lock = threading.Lock()


def _get_extraction_service():
    """Return the shared ExtractionService, creating it on first call.

    Raises:
        GeminiAuthError: no Gemini API key is configured.
    """
    global extraction_service
    with _extraction_lock:
        if extraction_service is None:
            extraction_service = scoremate.build_extraction_service(config)
    return extraction_service


@contextmanager
def _db_session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


class UserManager:
    """Account registration, login and password changes backed by the database."""

    def hash_password(self, password: str) -> str:
        return generate_password_hash(password)

    def register(self, username: str, password: str) -> Tuple[bool, str]:
        """Register a new user"""
        if len(username) < 3:
            return False, "Username must be at least 3 characters"
        if len(password) < 6:
            return False, "Password must be at least 6 characters"

        with _db_session() as db:
            if database.get_user_by_username(db, username):
                return False, "Username already exists"
            user = database.create_user(db, username, self.hash_password(password))

        if user:
            web_logger.info('Registered new user: %s', username)
            return True, "User registered successfully"
        return False, "Failed to create user"

    def login(self, username: str, password: str) -> Tuple[bool, str]:
        """Verify user credentials"""
        with _db_session() as db:
            is_valid = database.verify_user_password(db, username, password)
        if is_valid:
            return True, "Login successful"
        return False, "Invalid username or password"

    def change_password(self, username: str, current_password: str,
                        new_password: str) -> Tuple[bool, str]:
        if len(new_password) < 6:
            return False, "Password must be at least 6 characters"
        with _db_session() as db:
            if not database.verify_user_password(db, username, current_password):
                return False, "Current password is incorrect"
            ok = database.update_user_password(db, username, self.hash_password(new_password))
        if ok:
            web_logger.info('Password changed for user: %s', username)
            return True, "Password updated"
        return False, "Failed to update password"


user_manager = UserManager()


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def require_db(f):
    """Decorator to answer 503 when the database cannot be reached"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not ensure_db_available():
            return jsonify({'error': 'Database not available'}), 503
        return f(*args, **kwargs)
    return decorated_function


def require_login(f):
    """Decorator to require user to be logged in"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('username'):
            return jsonify({'error': 'Not logged in'}), 401
        return f(*args, **kwargs)
    return decorated_function


def _current_user() -> Optional[str]:
    return session.get('username')


def _int_field(data: Dict, key: str, default: int = 0) -> int:
    """Read an integer field from a JSON body; blanks fall back to *default*."""
    value = data.get(key)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, str):
        value = value.strip()
        if not value.lstrip('-').isdigit():
            raise ValueError(f"{key} must be an integer")
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return value


def _make_csv_response(csv_text: str, filename: str) -> Response:
    """Build a CSV download response."""
    return Response(
        csv_text.encode('utf-8'),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.errorhandler(MatchNotFoundError)
def _handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@app.errorhandler(ExtractionError)
def _handle_extraction_error(e):
    web_logger.warning('Scoreboard extraction failed: %s', e.reason)
    return jsonify({'error': 'Translation failed', 'detail': e.reason}), 502


@app.errorhandler(GeminiAuthError)
def _handle_gemini_auth(e):
    web_logger.error('Gemini is not usable: %s', e)
    return jsonify({'error': 'Image extraction is not configured', 'detail': str(e)}), 503


@app.errorhandler(ValueError)
@app.errorhandler(IndexError)
def _handle_bad_input(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(Exception)
def _handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    web_logger.exception('Unhandled error: %s', e)
    return jsonify({'error': 'Internal server error'}), 500


# ===========================================================================================
# Auth Endpoints
# ===========================================================================================

@app.route('/api/auth/current', methods=['GET'])
def api_auth_current():
    """Get current logged-in user"""
    username = _current_user()
    if username:
        return jsonify({'username': username})
    return jsonify({'username': None}), 401


@app.route('/api/auth/register', methods=['POST'])
@require_db
def api_auth_register():
    """Register a new user"""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username', '')).strip()
    password = str(data.get('password', '')).strip()
    web_logger.info('Register endpoint called for username=%s', username)

    if not username or not password:
        return jsonify({'error': 'Username and password required'}), 400

    success, message = user_manager.register(username, password)
    if not success:
        status = 409 if message == "Username already exists" else 400
        return jsonify({'error': message}), status
    return jsonify({'message': message}), 201


@app.route('/api/auth/login', methods=['POST'])
@require_db
def api_auth_login():
    """Log in a user"""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username', '')).strip()
    password = str(data.get('password', '')).strip()

    if not username or not password:
        return jsonify({'error': 'Username and password required'}), 400

    success, message = user_manager.login(username, password)
    if not success:
        return jsonify({'error': message}), 401

    session['username'] = username
    web_logger.info('User logged in: %s', username)
    return jsonify({'message': message, 'username': username})


@app.route('/api/auth/logout', methods=['POST'])
def api_auth_logout():
    """Log out the current user"""
    username = session.pop('username', None)
    if username:
        web_logger.info('User logged out: %s', username)
    return jsonify({'success': True})


@app.route('/api/auth/change-password', methods=['POST'])
@require_login
@require_db
def api_auth_change_password():
    data = request.get_json(silent=True) or {}
    current_password = str(data.get('current_password', ''))
    new_password = str(data.get('new_password', '')).strip()
    if not current_password or not new_password:
        return jsonify({'error': 'current_password and new_password required'}), 400

    success, message = user_manager.change_password(_current_user(), current_password, new_password)
    if not success:
        return jsonify({'error': message}), 400
    return jsonify({'message': message})


# ===========================================================================================
# Match Endpoints
# ===========================================================================================

@app.route('/api/matches', methods=['GET'])
@require_login
@require_db
def api_list_matches():
    """List the current user's matches, newest first (no images)"""
    with _db_session() as db:
        matches = _match_service.list(db, _current_user())
    return jsonify({'matches': [m.to_dict(include_image=False) for m in matches]})


@app.route('/api/matches', methods=['POST'])
@require_login
@require_db
def api_create_match():
    """Start a new match"""
    data = request.get_json(silent=True) or {}
    created_at = None
    if data.get('createdAt'):
        created_at = parse_timestamp(data['createdAt'])
    with _db_session() as db:
        match = _match_service.create(
            db, _current_user(),
            data.get('player1Name'), data.get('player2Name'),
            created_at=created_at,
        )
    return jsonify(match.to_dict()), 201


@app.route('/api/matches/<match_id>', methods=['GET'])
@require_login
@require_db
def api_get_match(match_id):
    with _db_session() as db:
        match = _match_service.refresh(db, _current_user(), match_id)
    return jsonify(match.to_dict())


@app.route('/api/matches/<match_id>', methods=['PUT'])
@require_login
@require_db
def api_update_match(match_id):
    """Overwrite a match document.

    Fields missing from the body keep their stored values.  An omitted or
    null ``scoreboardImage`` keeps the stored image, and an ended match stays
    ended.  A ``frames`` array is checked frame by frame like a manual entry
    and refused with 422 before anything is written.
    """
    data = request.get_json(silent=True) or {}
    if 'frames' in data:
        frames = data['frames']
        if not isinstance(frames, list) or not all(isinstance(f, dict) for f in frames):
            raise ValueError('frames must be a list of frame objects')
        for frame in frames:
            _, _, _, rejection = _checked_scores(frame)
            if rejection:
                return rejection
    owner = _current_user()
    with _db_session() as db:
        existing = _match_service.get(db, owner, match_id)
        document = existing.to_dict()
        document.update(data)
        document['id'] = existing.id
        if not data.get('scoreboardImage'):
            document['scoreboardImage'] = None
        match = Match.from_dict(document)
        if existing.is_ended:
            match.end()
        _match_service.update(db, owner, match)
        match = _match_service.get(db, owner, match_id)
    return jsonify(match.to_dict())


@app.route('/api/matches/<match_id>', methods=['DELETE'])
@require_login
@require_db
def api_delete_match(match_id):
    with _db_session() as db:
        _match_service.delete(db, _current_user(), match_id)
    return jsonify({'success': True})


def _checked_scores(data: Dict):
    """Parse and check a manual frame entry; returns (p1, p2, tag, rejection)."""
    p1 = _int_field(data, 'player1Score')
    p2 = _int_field(data, 'player2Score')
    result = _validation_service.verify_score_entry(p1, p2)
    if not result.is_valid:
        body = result.to_dict()
        body['error'] = result.warning_message
        return p1, p2, None, (jsonify(body), 422)
    return p1, p2, data.get('tag') or None, None


@app.route('/api/matches/<match_id>/frames', methods=['POST'])
@require_login
@require_db
def api_add_frame(match_id):
    """Append a frame; scores above the maximum break are refused"""
    p1, p2, tag, rejection = _checked_scores(request.get_json(silent=True) or {})
    if rejection:
        return rejection
    with _db_session() as db:
        match = _match_service.add_frame(db, _current_user(), match_id, p1, p2, tag)
    return jsonify(match.to_dict(include_image=False)), 201


@app.route('/api/matches/<match_id>/frames/<int:frame_number>', methods=['PUT'])
@require_login
@require_db
def api_edit_frame(match_id, frame_number):
    """Replace the scores of a frame (1-based number)"""
    p1, p2, tag, rejection = _checked_scores(request.get_json(silent=True) or {})
    if rejection:
        return rejection
    with _db_session() as db:
        match = _match_service.edit_frame(db, _current_user(), match_id, frame_number, p1, p2, tag)
    return jsonify(match.to_dict(include_image=False))


@app.route('/api/matches/<match_id>/end', methods=['POST'])
@require_login
@require_db
def api_end_match(match_id):
    with _db_session() as db:
        match = _match_service.end_match(db, _current_user(), match_id)
    return jsonify(match.to_dict(include_image=False))


@app.route('/api/matches/<match_id>/fouls', methods=['PUT'])
@require_login
@require_db
def api_set_fouls(match_id):
    data = request.get_json(silent=True) or {}
    p1 = _int_field(data, 'player1TotalFoulPoints')
    p2 = _int_field(data, 'player2TotalFoulPoints')
    with _db_session() as db:
        match = _match_service.set_foul_points(db, _current_user(), match_id, p1, p2)
    return jsonify(match.to_dict(include_image=False))


@app.route('/api/validate-score', methods=['POST'])
@require_login
def api_validate_score():
    """Check a frame score without saving anything"""
    data = request.get_json(silent=True) or {}
    result = _validation_service.verify_score_entry(
        _int_field(data, 'player1Score'), _int_field(data, 'player2Score'))
    return jsonify(result.to_dict())


# ===========================================================================================
# Statistics & Export
# ===========================================================================================

@app.route('/api/stats', methods=['GET'])
@require_login
@require_db
def api_stats():
    """Statistics for the current user, bucketed by ?period=month|year"""
    period = request.args.get('period', 'month')
    with _db_session() as db:
        matches = _match_service.list(db, _current_user())
    return jsonify(_stats_service.summary(matches, period))


@app.route('/api/export/csv', methods=['GET'])
@require_login
@require_db
def api_export_csv():
    """Download every recorded frame as CSV"""
    with _db_session() as db:
        matches = _match_service.list(db, _current_user())
    return _make_csv_response(_export_service.to_csv(matches), export_filename(date.today()))


@app.route('/api/frames', methods=['GET'])
@require_login
@require_db
def api_frames():
    """Flat table of every recorded frame"""
    with _db_session() as db:
        matches = _match_service.list(db, _current_user())
    return jsonify({'frames': frame_rows(matches)})


# ===========================================================================================
# Scoreboard Import
# ===========================================================================================

@app.route('/api/import/image', methods=['POST'])
@require_login
@require_db
def api_import_image():
    """Create an ended match from one scoreboard photo"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'No file uploaded'}), 400

    importer = ImportService(_match_service, _get_extraction_service())
    with _db_session() as db:
        match = importer.import_image(db, _current_user(), upload.read(), upload.filename)
    return jsonify(match.to_dict(include_image=False)), 201


@app.route('/api/import/archive', methods=['POST'])
@require_login
@require_db
def api_import_archive():
    """Create ended matches from every photo in a ZIP archive"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'No file uploaded'}), 400
    if not upload.filename.lower().endswith('.zip'):
        return jsonify({'error': 'Please upload a .zip file'}), 400

    importer = ImportService(_match_service, _get_extraction_service())
    with _db_session() as db:
        report = importer.import_archive(db, _current_user(), upload.read())
    return jsonify(report)


# ---------------------------------------------------------------------------
# Health & API Documentation
# ---------------------------------------------------------------------------

@app.route('/api/health', methods=['GET'])
def api_health():
    db_ok = ensure_db_available()
    return jsonify({
        'status': 'ok' if db_ok else 'degraded',
        'database': db_ok,
        'gemini_configured': bool(config.get('gemini_api_key')),
        'gemini_model': config.get('gemini_model'),
    }), 200 if db_ok else 503


@app.route('/api/openapi.json')
def api_openapi_spec():
    """Serve the OpenAPI 3.0 description as JSON."""
    from openapi_spec import build_spec
    server_url = request.url_root.rstrip('/')
    return jsonify(build_spec(server_url=server_url))


def run(host: str = '127.0.0.1', port: int = 5000, debug: bool = False) -> None:
    """Start the development server."""
    ensure_db_available()
    print("\n" + "=" * 60)
    print("🎱 ScoreMate API is starting...")
    print("=" * 60)
    print(f"\n  http://{host}:{port}/api/health")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")
    try:
        app.run(host=host, port=port, debug=debug)
    except KeyboardInterrupt:
        print("\n🛑 ScoreMate API stopped\n")


def main():
    """Main entry point for the web API"""
    parser = argparse.ArgumentParser(description='ScoreMate Web API')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()
    run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
