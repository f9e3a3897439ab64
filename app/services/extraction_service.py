"""Scoreboard photo extraction: Gemini call, schema check and clean-up.

The model is asked for a JSON document describing a handwritten snooker
scoreboard.  Its answer is untrusted, so it is parsed with strict pydantic
models before anything reaches the match model.  Post-processing then

1. normalises free-form tags to ``'star'``, ``'dot'`` or ``None``,
2. orders frames by the circled frame number the model read, and
3. drops the frame numbers, leaving plain :class:`~app.models.Frame` records.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from app.models import TAG_DOT, TAG_STAR, Frame
from gemini_client import GeminiAPIError, GeminiAuthError

logger = logging.getLogger('scoremate.service.ExtractionService')

IMAGE_MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.heic': 'image/heic',
    '.heif': 'image/heif',
}

SCOREBOARD_PROMPT = """You are an expert at reading snooker scores from photos of handwritten scoreboards. Extract the data with perfect accuracy.

FIRST, determine the orientation of the photo. Phone pictures are often sideways or upside down. If the writing is not upright, mentally rotate the image until it is before reading anything.

The top-to-bottom order of the rows does NOT matter. Every score row carries a circled number (for example ① or ⑩). That circled number is the frame number and the only identifier you may use for 'frameNumber'.

For every row that contains a score:
1. Read the circled number first. This is 'frameNumber'.
2. Read the score, written as '<left>-<right>'. The left value is player 1's score, the right value is player 2's score. Read handwritten digits carefully.
3. Look for a symbol on the row. A star means tag "star". A dot or small circle means tag "dot". Anything else, or no symbol, means tag null.

Then:
4. Player names are the column headers. The left name is 'player1Name', the right name is 'player2Name'.
5. Foul points are written as a negative number under each player's name (for example -78). Return them as positive numbers in 'player1TotalFoulPoints' and 'player2TotalFoulPoints'. Use 0 if none are written.
6. Ignore the large final totals and any other text.

Return only a JSON object of the form:
{"player1Name": str, "player2Name": str, "player1TotalFoulPoints": int, "player2TotalFoulPoints": int,
 "frames": [{"frameNumber": int, "player1Score": int, "player2Score": int, "tag": "star" | "dot" | null}]}
The frames array must contain every frame row found in the image."""


class ExtractionError(Exception):
    """The scoreboard could not be translated into match data."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Translation failed: {reason}")
        self.reason = reason


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------

class RawFrame(BaseModel):
    frameNumber: int
    player1Score: int = Field(ge=0)
    player2Score: int = Field(ge=0)
    tag: Optional[str] = None


class RawScoreboard(BaseModel):
    player1Name: str
    player2Name: str
    player1TotalFoulPoints: Optional[int] = 0
    player2TotalFoulPoints: Optional[int] = 0
    frames: List[RawFrame] = []


@dataclass
class ExtractionResult:
    """Clean, ordered match data read from one scoreboard photo."""
    player1_name: str
    player2_name: str
    player1_total_foul_points: int = 0
    player2_total_foul_points: int = 0
    frames: List[Frame] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'player1Name': self.player1_name,
            'player2Name': self.player2_name,
            'player1TotalFoulPoints': self.player1_total_foul_points,
            'player2TotalFoulPoints': self.player2_total_foul_points,
            'frames': [f.to_dict() for f in self.frames],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_tag(raw) -> Optional[str]:
    """Map whatever the model wrote for a tag onto ``'star'``, ``'dot'`` or ``None``."""
    if not raw:
        return None
    text = str(raw).lower()
    if 'star' in text or '☆' in text or '★' in text:
        return TAG_STAR
    if 'dot' in text or 'circle' in text or '•' in text:
        return TAG_DOT
    return None


def mime_type_for(filename: str) -> Optional[str]:
    """MIME type for a supported image file name, else ``None``."""
    return IMAGE_MIME_TYPES.get(os.path.splitext(filename or '')[1].lower())


def is_supported_image(filename: str) -> bool:
    return mime_type_for(filename) is not None


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith('```'):
        text = text.split('\n', 1)[1] if '\n' in text else ''
        if text.rstrip().endswith('```'):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_scoreboard(text: str) -> ExtractionResult:
    """Validate the model's JSON text and post-process it.

    Raises:
        ExtractionError: the text is not JSON or does not fit the schema.
            A blank player name is rejected too.
    """
    try:
        data = json.loads(_strip_code_fence(text))
    except (TypeError, ValueError) as exc:
        raise ExtractionError(f"response is not valid JSON ({exc})") from exc
    try:
        raw = RawScoreboard.model_validate(data)
    except ValidationError as exc:
        raise ExtractionError(f"response does not match the scoreboard schema ({exc.error_count()} errors)") from exc

    player1_name = raw.player1Name.strip()
    player2_name = raw.player2Name.strip()
    if not player1_name or not player2_name:
        raise ExtractionError("player names could not be read")

    # sorted() is stable, so duplicate frame numbers keep the model's order
    ordered = sorted(raw.frames, key=lambda f: f.frameNumber)
    frames = [Frame(f.player1Score, f.player2Score, normalize_tag(f.tag)) for f in ordered]
    return ExtractionResult(
        player1_name=player1_name,
        player2_name=player2_name,
        player1_total_foul_points=abs(raw.player1TotalFoulPoints or 0),
        player2_total_foul_points=abs(raw.player2TotalFoulPoints or 0),
        frames=frames,
    )


class ExtractionService:
    """Turns a scoreboard photo into an :class:`ExtractionResult`."""

    def __init__(self, client) -> None:
        """
        Args:
            client: A :class:`gemini_client.GeminiClient` (or any object with
                ``generate_json(prompt, image_bytes, mime_type)``).
        """
        self._client = client

    def extract(self, image_bytes: bytes, mime_type: str) -> ExtractionResult:
        """Read one scoreboard photo.

        Raises:
            ExtractionError: the request failed or the answer was unusable.
        """
        if not image_bytes:
            raise ExtractionError("image is empty")
        try:
            text = self._client.generate_json(SCOREBOARD_PROMPT, image_bytes, mime_type)
        except (GeminiAPIError, GeminiAuthError) as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise ExtractionError(str(exc)) from exc
        result = parse_scoreboard(text)
        logger.info("Extracted %d frames: %s vs %s",
                    len(result.frames), result.player1_name, result.player2_name)
        return result
