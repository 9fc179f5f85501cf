from __future__ import annotations

from types import SimpleNamespace
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "beermile_platform.settings")

import django

django.setup()

from django.test import SimpleTestCase

from beermile import scoring


def bet(pk, user_id, bet_type, **data):
    return SimpleNamespace(pk=pk, user_id=user_id, bet_type=bet_type, bet_data=data)


class RuleTests(SimpleTestCase):
    def test_over_under_is_strict(self):
        over = {"threshold_seconds": 400, "direction": "over"}
        under = {"threshold_seconds": 400, "direction": "under"}
        self.assertTrue(scoring.score_time_over_under(over, 401))
        self.assertFalse(scoring.score_time_over_under(over, 400))
        self.assertTrue(scoring.score_time_over_under(under, 399))
        self.assertFalse(scoring.score_time_over_under(under, 400))

    def test_vomit_prop(self):
        self.assertTrue(scoring.score_vomit_prop({"prediction": "yes"}, True))
        self.assertFalse(scoring.score_vomit_prop({"prediction": "yes"}, False))
        self.assertTrue(scoring.score_vomit_prop({"prediction": "no"}, False))

    def test_closest_guesses_share_the_win(self):
        self.assertEqual(scoring.find_closest_guesses([(1, 5), (2, 5), (3, 9)]), [1, 2])
        self.assertEqual(scoring.find_closest_guesses([]), [])


class ScoreBetsTests(SimpleTestCase):
    def test_symmetric_guesses_tie(self):
        bets = [
            bet(1, 10, scoring.EXACT_TIME_GUESS, guessed_time_seconds=395),
            bet(2, 11, scoring.EXACT_TIME_GUESS, guessed_time_seconds=415),
            bet(3, 12, scoring.EXACT_TIME_GUESS, guessed_time_seconds=430),
        ]
        outcomes = scoring.score_bets(bets, 405, False)
        self.assertEqual([outcome.won for outcome in outcomes], [True, True, False])
        self.assertEqual([outcome.points_awarded for outcome in outcomes], [1, 1, 0])
        self.assertEqual([outcome.distance for outcome in outcomes], [10, 10, 25])

    def test_single_guess_always_wins(self):
        outcomes = scoring.score_bets(
            [bet(1, 10, scoring.EXACT_TIME_GUESS, guessed_time_seconds=347)], 400, False
        )
        self.assertTrue(outcomes[0].won)
        self.assertEqual(outcomes[0].status, "won")

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValueError):
            scoring.score_bets([bet(1, 10, "longest_chug")], 400, False)


class LeaderboardTests(SimpleTestCase):
    def test_tally_seeds_users_at_zero(self):
        outcomes = [
            scoring.BetOutcome(bet_id=1, user_id=2, bet_type=scoring.VOMIT_PROP, won=True, points_awarded=1),
        ]
        points = scoring.tally_points([1, 2, 3], outcomes)
        self.assertEqual(dict(points), {1: 0, 2: 1, 3: 0})

    def test_ranks_are_positional(self):
        rows = scoring.rank_leaderboard({1: 1, 2: 3, 3: 1})
        self.assertEqual([(row.rank, row.user_id, row.points) for row in rows], [(1, 2, 3), (2, 1, 1), (3, 3, 1)])


class PreviewTests(SimpleTestCase):
    def test_three_bettors_all_win(self):
        bets = [
            bet(1, 1, scoring.TIME_OVER_UNDER, threshold_seconds=360, direction="over"),
            bet(2, 2, scoring.EXACT_TIME_GUESS, guessed_time_seconds=347),
            bet(3, 3, scoring.VOMIT_PROP, prediction="no"),
        ]
        preview = scoring.build_preview(
            bets,
            400,
            False,
            seed_user_ids=[1, 2, 3],
            usernames={1: "ann", 2: "bea", 3: "cal"},
        )
        winners = {item["bet_type"]: item for item in preview.winners}
        self.assertEqual(winners[scoring.TIME_OVER_UNDER]["users"], ["ann"])
        self.assertEqual(winners[scoring.TIME_OVER_UNDER]["details"], "Final time: 6:40")
        self.assertEqual(winners[scoring.EXACT_TIME_GUESS]["details"], "Closest guess: bea (53s off)")
        self.assertEqual(winners[scoring.VOMIT_PROP]["details"], "Runner did not vomit")
        self.assertEqual([row.points for row in preview.leaderboard], [1, 1, 1])
        self.assertEqual([row.rank for row in preview.leaderboard], [1, 2, 3])
        self.assertEqual([row.username for row in preview.leaderboard], ["ann", "bea", "cal"])

    def test_preview_without_winners_omits_groups(self):
        bets = [bet(1, 1, scoring.TIME_OVER_UNDER, threshold_seconds=400, direction="over")]
        preview = scoring.build_preview(bets, 400, True, seed_user_ids=[1])
        self.assertEqual(preview.winners, [])
        self.assertEqual(preview.leaderboard[0].points, 0)
