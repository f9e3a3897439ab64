"""Match and frame records shared by every layer.

``Frame`` and ``Match`` are plain dataclasses.  They serialise to the
camelCase document shape used by the HTTP API and stored in the database::

    {
      "id": "3f0c...",
      "player1Name": "Alice", "player2Name": "Bob",
      "frames": [{"player1Score": 10, "player2Score": 4, "tag": null}],
      "player1TotalFoulPoints": 0, "player2TotalFoulPoints": 0,
      "status": "playing",
      "createdAt": "2024-03-01T19:30:00",
      "scoreboardImage": null
    }
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

TAG_STAR = 'star'
TAG_DOT = 'dot'
VALID_TAGS = (TAG_STAR, TAG_DOT)

STATUS_PLAYING = 'playing'
STATUS_ENDED = 'ended'
VALID_STATUSES = (STATUS_PLAYING, STATUS_ENDED)


def _non_negative_int(value, name: str) -> int:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if isinstance(value, datetime):
        return value
    if not value:
        raise ValueError("createdAt is required")
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)


@dataclass
class Frame:
    """One frame of a match: both players' scores and an optional tag."""
    player1_score: int = 0
    player2_score: int = 0
    tag: Optional[str] = None

    def __post_init__(self) -> None:
        _non_negative_int(self.player1_score, 'player1Score')
        _non_negative_int(self.player2_score, 'player2Score')
        if self.tag is not None and self.tag not in VALID_TAGS:
            raise ValueError(f"tag must be one of {VALID_TAGS} or None, got {self.tag!r}")

    def winner(self) -> Optional[int]:
        """Return 1 or 2 for the player with the strictly higher score, else None."""
        if self.player1_score > self.player2_score:
            return 1
        if self.player2_score > self.player1_score:
            return 2
        return None

    def to_dict(self) -> Dict:
        return {
            'player1Score': self.player1_score,
            'player2Score': self.player2_score,
            'tag': self.tag,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Frame':
        return cls(
            player1_score=data.get('player1Score', 0),
            player2_score=data.get('player2Score', 0),
            tag=data.get('tag') or None,
        )


@dataclass
class Match:
    """A contest between two named players, owned by a single user."""
    id: str
    player1_name: str
    player2_name: str
    created_at: datetime
    frames: List[Frame] = field(default_factory=list)
    player1_total_foul_points: int = 0
    player2_total_foul_points: int = 0
    status: str = STATUS_PLAYING
    scoreboard_image: Optional[str] = None

    def __post_init__(self) -> None:
        _non_negative_int(self.player1_total_foul_points, 'player1TotalFoulPoints')
        _non_negative_int(self.player2_total_foul_points, 'player2TotalFoulPoints')
        if self.status not in VALID_STATUSES:
            raise ValueError(f"status must be one of {VALID_STATUSES}, got {self.status!r}")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_ended(self) -> bool:
        return self.status == STATUS_ENDED

    def frame_wins(self) -> Tuple[int, int]:
        """Return ``(player1_wins, player2_wins)``; drawn frames count for nobody."""
        p1 = p2 = 0
        for frame in self.frames:
            won_by = frame.winner()
            if won_by == 1:
                p1 += 1
            elif won_by == 2:
                p2 += 1
        return p1, p2

    def winner_name(self) -> Optional[str]:
        """Name of the player with strictly more frame wins.

        Only ended matches have a winner; a tie in frames won yields ``None``.
        """
        if not self.is_ended:
            return None
        p1, p2 = self.frame_wins()
        if p1 > p2:
            return self.player1_name
        if p2 > p1:
            return self.player2_name
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_frame(self, frame: Frame) -> None:
        self.frames.append(frame)

    def edit_frame(self, index: int, player1_score: int, player2_score: int,
                   tag: Optional[str] = None) -> Frame:
        """Replace the scores of the frame at zero-based *index*.

        Raises:
            IndexError: *index* does not address an existing frame.
        """
        if index < 0 or index >= len(self.frames):
            raise IndexError(f"Frame {index + 1} does not exist")
        frame = Frame(player1_score, player2_score, tag)
        self.frames[index] = frame
        return frame

    def end(self) -> None:
        """Mark the match as ended.  There is no way back to ``playing``."""
        self.status = STATUS_ENDED

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self, include_image: bool = True) -> Dict:
        data = {
            'id': self.id,
            'player1Name': self.player1_name,
            'player2Name': self.player2_name,
            'frames': [f.to_dict() for f in self.frames],
            'player1TotalFoulPoints': self.player1_total_foul_points,
            'player2TotalFoulPoints': self.player2_total_foul_points,
            'status': self.status,
            'createdAt': self.created_at.isoformat(),
        }
        if include_image:
            data['scoreboardImage'] = self.scoreboard_image
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            id=str(data['id']),
            player1_name=data.get('player1Name', ''),
            player2_name=data.get('player2Name', ''),
            created_at=parse_timestamp(data.get('createdAt')),
            frames=[Frame.from_dict(f) for f in data.get('frames') or []],
            player1_total_foul_points=data.get('player1TotalFoulPoints', 0) or 0,
            player2_total_foul_points=data.get('player2TotalFoulPoints', 0) or 0,
            status=data.get('status', STATUS_PLAYING),
            scoreboard_image=data.get('scoreboardImage'),
        )
