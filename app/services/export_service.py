"""Flat CSV export of every frame a user has recorded."""
import csv
import io
from datetime import date
from typing import Dict, List, Optional

from app.models import Match

CSV_COLUMNS = [
    'match_id',
    'date',
    'player1_name',
    'player2_name',
    'frame_number',
    'player1_score',
    'player2_score',
    'tag',
    'player1_total_foul_points',
    'player2_total_foul_points',
    'status',
]


def frame_rows(matches: List[Match]) -> List[Dict]:
    """One dict per frame, keyed by :data:`CSV_COLUMNS`, in match then frame order."""
    rows = []
    for match in matches:
        for number, frame in enumerate(match.frames, start=1):
            rows.append({
                'match_id': match.id,
                'date': match.created_at.isoformat(),
                'player1_name': match.player1_name,
                'player2_name': match.player2_name,
                'frame_number': number,
                'player1_score': frame.player1_score,
                'player2_score': frame.player2_score,
                'tag': frame.tag or '',
                'player1_total_foul_points': match.player1_total_foul_points,
                'player2_total_foul_points': match.player2_total_foul_points,
                'status': match.status,
            })
    return rows


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"snooker_scores_export_{today.isoformat()}.csv"


class ExportService:
    """Serialises matches to CSV text."""

    def to_csv(self, matches: List[Match]) -> str:
        """Return the CSV document for *matches*.

        The result is an empty string when there are no frames at all, so
        callers can tell "nothing to export" apart from a header-only file.
        """
        rows = frame_rows(matches)
        if not rows:
            return ''
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator='\n')
        writer.writeheader()
        writer.writerows(rows)
        return buf.getvalue()
