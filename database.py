#!/usr/bin/env python3
"""
Database models and helpers for ScoreMate.

Every match row belongs to exactly one user and stores its frame list as a
JSON document.  All helper functions take an explicit SQLAlchemy session and
an owner username so that no query can reach another user's matches.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from werkzeug.security import check_password_hash

logger = logging.getLogger('scoremate.database')

# Database URL - any SQLAlchemy URL works; SQLite is the zero-setup default
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///scoremate.db')

Base = declarative_base()

try:
    _connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
    engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
except Exception as e:
    logger.warning(f"Database engine could not be created: {e}")
    engine = None
    SessionLocal = None


def _utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Account that owns a private collection of matches."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # werkzeug password hash
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    matches = relationship("Match", back_populates="user", cascade="all, delete-orphan")


class Match(Base):
    """One snooker match document, scoped to its owner."""
    __tablename__ = "matches"

    id = Column(String(32), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    player1_name = Column(String(255), nullable=False)
    player2_name = Column(String(255), nullable=False)
    frames = Column(Text, default='[]')  # JSON array of frame objects
    player1_total_foul_points = Column(Integer, default=0)
    player2_total_foul_points = Column(Integer, default=0)
    status = Column(String(20), default='playing')  # 'playing' or 'ended'
    created_at = Column(DateTime, default=_utcnow, index=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
    scoreboard_image = Column(Text, nullable=True)  # data URI

    user = relationship("User", back_populates="matches")


def get_db():
    """Get database session."""
    if SessionLocal:
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()
    else:
        yield None


def init_db():
    """Initialize database tables."""
    if engine:
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables initialized successfully")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            return False
    return False


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user_by_username(db, username: str):
    """Get user from database."""
    if not db:
        return None
    try:
        return db.query(User).filter(User.username == username).first()
    except Exception as e:
        logger.error(f"Error getting user: {e}")
        return None


def user_exists(db, username: str) -> bool:
    return get_user_by_username(db, username) is not None


def create_user(db, username: str, password_hash: str):
    """Create a user account.

    Args:
        db: Database session
        username: Unique username
        password_hash: Already-hashed password

    Returns:
        The new :class:`User`, or None if the username is taken or on error.
    """
    if not db:
        return None
    try:
        if db.query(User).filter(User.username == username).first():
            logger.warning(f"User {username} already exists")
            return None
        user = User(username=username, password=password_hash)
        db.add(user)
        db.commit()
        return user
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        db.rollback()
        return None


def verify_user_password(db, username: str, password: str) -> bool:
    """Check a plaintext *password* against the stored hash."""
    if not db:
        return False
    try:
        user = db.query(User).filter(User.username == username).first()
        if user and check_password_hash(user.password, password):
            return True
        return False
    except Exception as e:
        logger.error(f"Error verifying password: {e}")
        return False


def update_user_password(db, username: str, password_hash: str) -> bool:
    """Replace the stored password hash for *username*."""
    if not db:
        return False
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            return False
        user.password = password_hash
        user.updated_at = _utcnow()
        db.commit()
        return True
    except Exception as e:
        logger.error(f"Error updating password: {e}")
        db.rollback()
        return False


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def _match_to_dict(row: Match, include_image: bool = True) -> dict:
    try:
        frames = json.loads(row.frames or '[]')
    except (TypeError, ValueError):
        logger.warning(f"Match {row.id} has unreadable frames, treating as empty")
        frames = []
    data = {
        'id': row.id,
        'player1Name': row.player1_name,
        'player2Name': row.player2_name,
        'frames': frames,
        'player1TotalFoulPoints': row.player1_total_foul_points or 0,
        'player2TotalFoulPoints': row.player2_total_foul_points or 0,
        'status': row.status or 'playing',
        'createdAt': row.created_at.isoformat() if row.created_at else None,
    }
    if include_image:
        data['scoreboardImage'] = row.scoreboard_image
    return data


def _owned_match(db, user: User, match_id: str):
    return db.query(Match).filter(
        Match.id == str(match_id),
        Match.user_id == user.id,
    ).first()


def list_matches(db, username: str) -> list:
    """Return every match owned by *username*, newest first, without images."""
    if not db:
        return []
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            return []
        rows = db.query(Match).filter(
            Match.user_id == user.id
        ).order_by(Match.created_at.desc()).all()
        return [_match_to_dict(r, include_image=False) for r in rows]
    except Exception as e:
        logger.error(f"Error listing matches: {e}")
        return []


def get_match(db, username: str, match_id: str):
    """Return one match (including its scoreboard image) or None."""
    if not db:
        return None
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            return None
        row = _owned_match(db, user, match_id)
        return _match_to_dict(row) if row else None
    except Exception as e:
        logger.error(f"Error getting match: {e}")
        return None


def create_match(db, username: str, player1_name: str, player2_name: str,
                 created_at: datetime = None):
    """Create an empty ``playing`` match for *username*.

    Args:
        db: Database session
        username: Owner
        player1_name: Display name of player 1
        player2_name: Display name of player 2
        created_at: Match start time (defaults to now, UTC)

    Returns:
        The created match as a dict, or None on error.
    """
    if not db:
        return None
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            logger.error(f"User {username} not found")
            return None
        if created_at is not None and created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
        row = Match(
            id=uuid.uuid4().hex,
            user_id=user.id,
            player1_name=player1_name,
            player2_name=player2_name,
            frames='[]',
            player1_total_foul_points=0,
            player2_total_foul_points=0,
            status='playing',
            created_at=created_at or _utcnow(),
        )
        db.add(row)
        db.commit()
        logger.info(f"Created match {row.id} for user {username}")
        return _match_to_dict(row)
    except Exception as e:
        logger.error(f"Error creating match: {e}")
        db.rollback()
        return None


def update_match(db, username: str, match_id: str, document: dict) -> bool:
    """Overwrite the stored fields of one of *username*'s matches.

    ``id`` and ownership are never written.  A missing or ``None``
    ``scoreboardImage`` leaves the stored image untouched.

    Returns:
        True on success, False when the match is not in the owner's
        namespace or on error.
    """
    if not db:
        return False
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            return False
        row = _owned_match(db, user, match_id)
        if not row:
            logger.warning(f"Match {match_id} not found for user {username}")
            return False

        row.player1_name = document.get('player1Name', row.player1_name)
        row.player2_name = document.get('player2Name', row.player2_name)
        row.frames = json.dumps(document.get('frames') or [])
        row.player1_total_foul_points = document.get('player1TotalFoulPoints', 0) or 0
        row.player2_total_foul_points = document.get('player2TotalFoulPoints', 0) or 0
        row.status = document.get('status', row.status)
        if document.get('createdAt'):
            created = document['createdAt']
            if isinstance(created, str):
                created = datetime.fromisoformat(created.replace('Z', '+00:00'))
            if created.tzinfo is not None:
                created = created.astimezone(timezone.utc).replace(tzinfo=None)
            row.created_at = created
        if document.get('scoreboardImage') is not None:
            row.scoreboard_image = document['scoreboardImage']
        row.updated_at = _utcnow()
        db.commit()
        return True
    except Exception as e:
        logger.error(f"Error updating match: {e}")
        db.rollback()
        return False


def delete_match(db, username: str, match_id: str) -> bool:
    """Delete one of *username*'s matches.

    Returns:
        True on success (including when the match was already gone),
        False on error.
    """
    if not db:
        return False
    try:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            return True
        row = _owned_match(db, user, match_id)
        if row:
            db.delete(row)
            db.commit()
            logger.info(f"Deleted match {match_id} for user {username}")
        return True
    except Exception as e:
        logger.error(f"Error deleting match: {e}")
        db.rollback()
        return False
