#!/usr/bin/env python3
"""
Unit tests for app/services/stats_service.py.

Run with:
    python -m pytest tests/test_stats.py
"""
import os
import sys
import unittest
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models import Frame, Match
from app.services import StatsService
from app.services.stats_service import (
    activity_by_period, average_score_by_period, best_plays, period_key,
    player_wins_by_period, round_one_decimal,
)


def _match(match_id, when, frames, status='ended', p1='Alice', p2='Bob'):
    return Match(id=match_id, player1_name=p1, player2_name=p2, created_at=when,
                 frames=[Frame(a, b) for a, b in frames], status=status)


MATCHES = [
    _match('m1', datetime(2024, 1, 5), [(60, 10), (70, 20)]),              # Alice 2-0
    _match('m2', datetime(2024, 1, 20), [(10, 80), (0, 90), (50, 40)]),     # Bob 2-1
    _match('m3', datetime(2024, 2, 2), [(100, 0)], p2='Carol'),             # Alice 1-0
    _match('m4', datetime(2024, 2, 9), [(30, 40)], status='playing'),       # not ended
]


class TestPeriodKey(unittest.TestCase):

    def test_month_and_year(self):
        m = MATCHES[0]
        self.assertEqual(period_key(m, 'month'), '2024-01')
        self.assertEqual(period_key(m, 'year'), '2024')

    def test_unknown_period(self):
        with self.assertRaises(ValueError):
            period_key(MATCHES[0], 'week')


class TestPlayerWins(unittest.TestCase):

    def test_monthly_wins_include_zero_entries(self):
        result = player_wins_by_period(MATCHES, 'month')
        self.assertEqual([b['period'] for b in result], ['2024-01', '2024-02'])
        self.assertEqual(result[0]['wins'], {'Alice': 1, 'Bob': 1, 'Carol': 0})
        self.assertEqual(result[1]['wins'], {'Alice': 1, 'Bob': 0, 'Carol': 0})

    def test_tied_ended_match_credits_nobody(self):
        tied = [_match('t', datetime(2024, 5, 1), [(50, 10), (10, 50)])]
        self.assertEqual(player_wins_by_period(tied, 'year')[0]['wins'], {'Alice': 0, 'Bob': 0})

    def test_yearly_buckets_sorted(self):
        matches = [_match('a', datetime(2025, 1, 1), [(1, 0)]),
                   _match('b', datetime(2023, 6, 1), [(1, 0)])]
        self.assertEqual([b['period'] for b in player_wins_by_period(matches, 'year')],
                         ['2023', '2025'])


class TestAverageScores(unittest.TestCase):

    def test_averages_count_unfinished_matches(self):
        feb = average_score_by_period(MATCHES, 'month')[1]
        self.assertEqual(feb['period'], '2024-02')
        # Alice: 100 + 30 over 2 frames, Bob: 40 over 1 frame, Carol: 0 over 1
        self.assertEqual(feb['averages'], {'Alice': 65.0, 'Bob': 40.0, 'Carol': 0.0})

    def test_rounded_to_one_decimal(self):
        jan = average_score_by_period(MATCHES, 'month')[0]
        # Alice: (60+70+10+0+50)/5 = 38.0, Bob: (10+20+80+90+40)/5 = 48.0
        self.assertEqual(jan['averages']['Alice'], 38.0)
        matches = [_match('r', datetime(2024, 1, 1), [(10, 0), (10, 0), (11, 0)])]
        self.assertEqual(average_score_by_period(matches, 'year')[0]['averages']['Alice'], 10.3)

    def test_halves_round_up(self):
        # Alice: 11 + 10 + 10 + 10 = 41 over 4 frames = 10.25
        matches = [_match('h', datetime(2024, 1, 1), [(11, 0), (10, 0), (10, 0), (10, 0)])]
        self.assertEqual(average_score_by_period(matches, 'year')[0]['averages']['Alice'], 10.3)
        self.assertEqual(round_one_decimal(1.25), 1.3)
        self.assertEqual(round_one_decimal(2.0), 2.0)

    def test_player_without_frames_is_zero(self):
        self.assertEqual(average_score_by_period(MATCHES, 'month')[0]['averages']['Carol'], 0)


class TestBestPlays(unittest.TestCase):

    def test_sorted_descending_with_details(self):
        plays = best_plays(MATCHES)
        self.assertEqual(plays[0], {'date': '2024-02-02', 'player': 'Alice',
                                    'frame': '100-0', 'score': 100, 'matchId': 'm3'})
        self.assertEqual([p['score'] for p in plays][:3], [100, 90, 80])

    def test_draws_skipped_and_limit_applied(self):
        frames = [(i, 0) for i in range(1, 15)] + [(50, 50)]
        plays = best_plays([_match('x', datetime(2024, 1, 1), frames)])
        self.assertEqual(len(plays), 10)
        self.assertNotIn('50-50', [p['frame'] for p in plays])

    def test_ties_keep_encounter_order(self):
        matches = [_match('first', datetime(2024, 1, 1), [(70, 0)]),
                   _match('second', datetime(2024, 1, 2), [(70, 3)])]
        self.assertEqual([p['matchId'] for p in best_plays(matches)], ['first', 'second'])

    def test_resorting_top_list_is_stable(self):
        plays = best_plays(MATCHES)
        resorted = sorted(plays, key=lambda p: p['score'], reverse=True)
        self.assertEqual(resorted, plays)


class TestActivity(unittest.TestCase):

    def test_monthly_activity(self):
        result = activity_by_period(MATCHES, 'month')
        self.assertEqual(result[0], {'period': '2024-01', 'totalMatches': 2,
                                     'totalFrames': 5, 'avgFramesPerMatch': 2.5})
        self.assertEqual(result[1]['totalMatches'], 2)
        self.assertEqual(result[1]['totalFrames'], 2)

    def test_average_frames_rounds_half_up(self):
        # 5 frames over 4 matches = 1.25
        matches = [_match(f'a{i}', datetime(2024, 3, i + 1), [(1, 0)]) for i in range(3)]
        matches.append(_match('a3', datetime(2024, 3, 9), [(1, 0), (0, 1)]))
        self.assertEqual(activity_by_period(matches, 'month')[0]['avgFramesPerMatch'], 1.3)


class TestStatsService(unittest.TestCase):

    def test_summary_bundles_everything(self):
        summary = StatsService().summary(MATCHES, 'year')
        self.assertEqual(summary['players'], ['Alice', 'Bob', 'Carol'])
        self.assertEqual(summary['totalMatches'], 4)
        self.assertEqual(summary['playerWins'], [{'period': '2024',
                                                  'wins': {'Alice': 2, 'Bob': 1, 'Carol': 0}}])
        self.assertEqual(len(summary['bestPlays']), 7)

    def test_empty_input(self):
        summary = StatsService().summary([], 'month')
        self.assertEqual(summary['playerWins'], [])
        self.assertEqual(summary['activity'], [])

    def test_bad_period(self):
        with self.assertRaises(ValueError):
            StatsService().summary(MATCHES, 'decade')


if __name__ == '__main__':
    unittest.main()
