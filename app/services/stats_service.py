"""Score aggregation: win tallies, averages, best plays and activity.

Everything here is a pure function of a list of :class:`~app.models.Match`
records.  Nothing touches the database, so the same functions back the
``/api/stats`` route and the ``scoremate stats`` CLI command.
"""
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from app.models import Frame, Match

PERIOD_MONTH = 'month'
PERIOD_YEAR = 'year'
VALID_PERIODS = (PERIOD_MONTH, PERIOD_YEAR)

BEST_PLAYS_LIMIT = 10


def frame_winner(frame: Frame) -> Optional[int]:
    """Return 1 or 2 for the frame winner, ``None`` for a drawn frame."""
    return frame.winner()


def match_winner(match: Match) -> Optional[str]:
    """Name of the winner of an ended match, else ``None``."""
    return match.winner_name()


def period_key(match: Match, period: str) -> str:
    """Bucket key for *match*: ``YYYY-MM`` by month or ``YYYY`` by year.

    Raises:
        ValueError: *period* is not ``'month'`` or ``'year'``.
    """
    if period == PERIOD_MONTH:
        return match.created_at.strftime('%Y-%m')
    if period == PERIOD_YEAR:
        return match.created_at.strftime('%Y')
    raise ValueError(f"Unknown period {period!r}; expected one of {VALID_PERIODS}")


def round_one_decimal(value: float) -> float:
    """Round to one decimal place with halves going up (1.25 -> 1.3)."""
    # exact binary value, as a browser's toFixed(1) sees it
    return float(Decimal(value).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def _bucketed(matches: List[Match], period: str) -> 'OrderedDict[str, List[Match]]':
    buckets: Dict[str, List[Match]] = {}
    for match in matches:
        buckets.setdefault(period_key(match, period), []).append(match)
    # zero-padded keys sort chronologically as strings
    return OrderedDict(sorted(buckets.items()))


def all_players(matches: List[Match]) -> List[str]:
    """Sorted list of every distinct player name appearing in *matches*."""
    names = set()
    for match in matches:
        names.add(match.player1_name)
        names.add(match.player2_name)
    return sorted(names)


def player_wins_by_period(matches: List[Match], period: str) -> List[Dict]:
    """Count match wins per player in each time bucket.

    Only ended matches with a winner contribute.  Every player seen in any
    match gets an entry in every bucket, so a chart can plot a zero.

    Returns:
        ``[{"period": "2024-03", "wins": {"Alice": 2, "Bob": 0}}, ...]``
    """
    players = all_players(matches)
    result = []
    for key, bucket in _bucketed(matches, period).items():
        wins = {name: 0 for name in players}
        for match in bucket:
            winner = match_winner(match)
            if winner is not None:
                wins[winner] += 1
        result.append({'period': key, 'wins': wins})
    return result


def average_score_by_period(matches: List[Match], period: str) -> List[Dict]:
    """Average points per frame for each player in each bucket.

    Matches of any status count.  A player with no frames in the bucket
    averages 0.  Values are rounded to one decimal place.
    """
    players = all_players(matches)
    result = []
    for key, bucket in _bucketed(matches, period).items():
        totals = {name: 0 for name in players}
        counts = {name: 0 for name in players}
        for match in bucket:
            for frame in match.frames:
                totals[match.player1_name] += frame.player1_score
                counts[match.player1_name] += 1
                totals[match.player2_name] += frame.player2_score
                counts[match.player2_name] += 1
        averages = {
            name: round_one_decimal(totals[name] / counts[name]) if counts[name] else 0
            for name in players
        }
        result.append({'period': key, 'averages': averages})
    return result


def best_plays(matches: List[Match], limit: int = BEST_PLAYS_LIMIT) -> List[Dict]:
    """Highest single-frame winning scores across all matches.

    Drawn frames are skipped.  Ties keep their encounter order.
    """
    candidates = []
    for match in matches:
        date = match.created_at.strftime('%Y-%m-%d')
        for frame in match.frames:
            won_by = frame_winner(frame)
            if won_by is None:
                continue
            if won_by == 1:
                player, score, other = match.player1_name, frame.player1_score, frame.player2_score
            else:
                player, score, other = match.player2_name, frame.player2_score, frame.player1_score
            candidates.append({
                'date': date,
                'player': player,
                'frame': f"{score}-{other}",
                'score': score,
                'matchId': match.id,
            })
    candidates.sort(key=lambda c: c['score'], reverse=True)
    return candidates[:limit]


def activity_by_period(matches: List[Match], period: str) -> List[Dict]:
    """Number of matches and frames played per bucket."""
    result = []
    for key, bucket in _bucketed(matches, period).items():
        total_matches = len(bucket)
        total_frames = sum(len(m.frames) for m in bucket)
        avg = round_one_decimal(total_frames / total_matches) if total_matches else 0
        result.append({
            'period': key,
            'totalMatches': total_matches,
            'totalFrames': total_frames,
            'avgFramesPerMatch': avg,
        })
    return result


class StatsService:
    """Bundles the aggregation functions into one statistics payload."""

    def summary(self, matches: List[Match], period: str = PERIOD_MONTH) -> Dict:
        """Return every statistic for *matches*, bucketed by *period*.

        Raises:
            ValueError: *period* is not ``'month'`` or ``'year'``.
        """
        if period not in VALID_PERIODS:
            raise ValueError(f"Unknown period {period!r}; expected one of {VALID_PERIODS}")
        return {
            'period': period,
            'players': all_players(matches),
            'totalMatches': len(matches),
            'playerWins': player_wins_by_period(matches, period),
            'averageScores': average_score_by_period(matches, period),
            'bestPlays': best_plays(matches),
            'activity': activity_by_period(matches, period),
        }
