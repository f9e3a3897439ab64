"""Business logic for owner-scoped match persistence."""
import logging
from datetime import datetime
from typing import List, Optional

from app.models import Frame, Match


class MatchNotFoundError(LookupError):
    """The match does not exist in the requesting owner's namespace."""

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


def _clean_player_name(name, label: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"{label} is required")
    return name.strip()


class MatchService:
    """Create, read, update and delete matches for a single owner at a time,
    delegating persistence to the ``database`` module's helper functions.

    Every method takes a *db* SQLAlchemy session and the *owner* username.
    The database helpers report failures with sentinels (``None``/``False``);
    this class turns them into :class:`MatchNotFoundError` so route handlers
    can map them to a 404.
    """

    def __init__(self, db_module) -> None:
        """
        Args:
            db_module: The imported ``database`` module (or any object that
                exposes ``list_matches``, ``get_match``, ``create_match``,
                ``update_match`` and ``delete_match``).
        """
        self._db = db_module
        self._log = logging.getLogger(f'scoremate.service.{type(self).__name__}')

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list(self, db, owner: str) -> List[Match]:
        """Return every match of *owner*, newest first, without images."""
        return [Match.from_dict(doc) for doc in self._db.list_matches(db, owner)]

    def get(self, db, owner: str, match_id: str) -> Match:
        """Return one match including its scoreboard image.

        Raises:
            MatchNotFoundError: no such match for *owner*.
        """
        doc = self._db.get_match(db, owner, match_id)
        if doc is None:
            raise MatchNotFoundError(match_id)
        return Match.from_dict(doc)

    def refresh(self, db, owner: str, match_id: str) -> Match:
        """Re-read a match after an external change."""
        return self.get(db, owner, match_id)

    def create(self, db, owner: str, player1_name: str, player2_name: str,
               created_at: Optional[datetime] = None) -> Match:
        """Create an empty ``playing`` match.

        Args:
            db:           SQLAlchemy session.
            owner:        Owning username.
            player1_name: Name of player 1 (whitespace is stripped).
            player2_name: Name of player 2 (whitespace is stripped).
            created_at:   Start time; defaults to now.

        Returns:
            The stored :class:`Match`.

        Raises:
            ValueError: a player name is blank.
            RuntimeError: the database refused the insert.
        """
        p1 = _clean_player_name(player1_name, 'player1Name')
        p2 = _clean_player_name(player2_name, 'player2Name')
        doc = self._db.create_match(db, owner, p1, p2, created_at=created_at)
        if doc is None:
            raise RuntimeError(f"Could not create match for {owner}")
        self._log.info("Match %s created: %s vs %s", doc['id'], p1, p2)
        return Match.from_dict(doc)

    def update(self, db, owner: str, match: Match) -> Match:
        """Persist every field of *match* except its id and owner.

        A ``None`` scoreboard image keeps the stored one.

        Raises:
            MatchNotFoundError: *match.id* is not one of *owner*'s matches.
        """
        match.player1_name = _clean_player_name(match.player1_name, 'player1Name')
        match.player2_name = _clean_player_name(match.player2_name, 'player2Name')
        if not self._db.update_match(db, owner, match.id, match.to_dict()):
            raise MatchNotFoundError(match.id)
        return match

    def delete(self, db, owner: str, match_id: str) -> None:
        """Delete a match; deleting a missing match is not an error."""
        if not self._db.delete_match(db, owner, match_id):
            self._log.warning("Delete of match %s for %s did not complete", match_id, owner)

    # ------------------------------------------------------------------
    # Match board mutations
    # ------------------------------------------------------------------

    def add_frame(self, db, owner: str, match_id: str, player1_score: int = 0,
                  player2_score: int = 0, tag: Optional[str] = None) -> Match:
        """Append a frame to the end of the match."""
        match = self.get(db, owner, match_id)
        match.add_frame(Frame(player1_score, player2_score, tag))
        return self.update(db, owner, match)

    def edit_frame(self, db, owner: str, match_id: str, frame_number: int,
                   player1_score: int, player2_score: int,
                   tag: Optional[str] = None) -> Match:
        """Replace the scores of 1-based *frame_number*.

        Raises:
            IndexError: the frame does not exist.
        """
        match = self.get(db, owner, match_id)
        match.edit_frame(frame_number - 1, player1_score, player2_score, tag)
        return self.update(db, owner, match)

    def end_match(self, db, owner: str, match_id: str) -> Match:
        match = self.get(db, owner, match_id)
        if match.is_ended:
            return match
        match.end()
        return self.update(db, owner, match)

    def set_foul_points(self, db, owner: str, match_id: str,
                        player1_points: int, player2_points: int) -> Match:
        """Overwrite both players' foul point totals."""
        match = self.get(db, owner, match_id)
        updated = Match(
            id=match.id,
            player1_name=match.player1_name,
            player2_name=match.player2_name,
            created_at=match.created_at,
            frames=match.frames,
            player1_total_foul_points=player1_points,
            player2_total_foul_points=player2_points,
            status=match.status,
            scoreboard_image=match.scoreboard_image,
        )
        return self.update(db, owner, updated)
