"""Scoring helpers for settling bets once results are in."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Protocol

from .utils import format_time


POINTS_PER_WIN = 1

TIME_OVER_UNDER = "time_over_under"
EXACT_TIME_GUESS = "exact_time_guess"
VOMIT_PROP = "vomit_prop"

BET_TYPES = (TIME_OVER_UNDER, EXACT_TIME_GUESS, VOMIT_PROP)


class ScorableBet(Protocol):
    pk: Any
    user_id: Hashable
    bet_type: str
    bet_data: dict


@dataclass(frozen=True)
class BetOutcome:
    """Scoring outcome for a single bet."""

    bet_id: Any
    user_id: Hashable
    bet_type: str
    won: bool
    points_awarded: int
    distance: int | None = None

    @property
    def status(self) -> str:
        return "won" if self.won else "lost"


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    user_id: Hashable
    points: int
    username: str | None = None


@dataclass
class ScoringPreview:
    """Dry-run view of a settlement: winners per bet type and projected ranks."""

    winners: list[dict[str, object]] = field(default_factory=list)
    leaderboard: list[LeaderboardRow] = field(default_factory=list)
    outcomes: list[BetOutcome] = field(default_factory=list)


def score_time_over_under(bet_data: dict, final_time_seconds: int) -> bool:
    """Over wins above the threshold, under wins below it; equal loses both."""

    threshold = bet_data["threshold_seconds"]
    if bet_data["direction"] == "over":
        return final_time_seconds > threshold
    if bet_data["direction"] == "under":
        return final_time_seconds < threshold
    raise ValueError(f"Unknown direction {bet_data['direction']!r}.")


def guess_distance(bet_data: dict, final_time_seconds: int) -> int:
    return abs(bet_data["guessed_time_seconds"] - final_time_seconds)


def score_vomit_prop(bet_data: dict, vomit_outcome: bool) -> bool:
    prediction = bet_data["prediction"]
    if prediction == "yes":
        return vomit_outcome is True
    if prediction == "no":
        return vomit_outcome is False
    raise ValueError(f"Unknown prediction {prediction!r}.")


def find_closest_guesses(guesses: Iterable[tuple[Any, int]]) -> list[Any]:
    """Return every bet id sitting at the minimum distance. Ties all win."""

    guesses = list(guesses)
    if not guesses:
        return []
    minimum = min(distance for _, distance in guesses)
    return [bet_id for bet_id, distance in guesses if distance == minimum]


def _outcome(bet: ScorableBet, won: bool, distance: int | None = None) -> BetOutcome:
    return BetOutcome(
        bet_id=bet.pk,
        user_id=bet.user_id,
        bet_type=bet.bet_type,
        won=won,
        points_awarded=POINTS_PER_WIN if won else 0,
        distance=distance,
    )


def score_bets(
    bets: Iterable[ScorableBet],
    final_time_seconds: int,
    vomit_outcome: bool,
) -> list[BetOutcome]:
    """Score a batch of pending bets against the final outcome.

    Exact time guesses are judged against each other, so the whole batch must
    be supplied at once. Results keep the input order.
    """

    bets = list(bets)
    distances: dict[Any, int] = {}
    for bet in bets:
        if bet.bet_type == EXACT_TIME_GUESS:
            distances[bet.pk] = guess_distance(bet.bet_data, final_time_seconds)
    closest = set(find_closest_guesses(distances.items()))

    outcomes: list[BetOutcome] = []
    for bet in bets:
        if bet.bet_type == TIME_OVER_UNDER:
            outcomes.append(_outcome(bet, score_time_over_under(bet.bet_data, final_time_seconds)))
        elif bet.bet_type == EXACT_TIME_GUESS:
            outcomes.append(_outcome(bet, bet.pk in closest, distances[bet.pk]))
        elif bet.bet_type == VOMIT_PROP:
            outcomes.append(_outcome(bet, score_vomit_prop(bet.bet_data, vomit_outcome)))
        else:
            raise ValueError(f"Unknown bet type {bet.bet_type!r}.")
    return outcomes


def tally_points(user_ids: Iterable[Hashable], outcomes: Iterable[BetOutcome]) -> "OrderedDict[Hashable, int]":
    """Seed every user at zero then add awarded points.

    Users that only appear in ``outcomes`` are appended after the seeded ones.
    """

    points: OrderedDict[Hashable, int] = OrderedDict((user_id, 0) for user_id in user_ids)
    for outcome in outcomes:
        points[outcome.user_id] = points.get(outcome.user_id, 0) + outcome.points_awarded
    return points


def rank_leaderboard(
    points: "OrderedDict[Hashable, int] | dict[Hashable, int]",
    usernames: dict[Hashable, str] | None = None,
) -> list[LeaderboardRow]:
    """Rank by points descending.

    Ranks are positional: equal points keep their seed order and still get
    distinct ranks.
    """

    usernames = usernames or {}
    ordered = sorted(points.items(), key=lambda item: -item[1])
    return [
        LeaderboardRow(rank=index, user_id=user_id, points=total, username=usernames.get(user_id))
        for index, (user_id, total) in enumerate(ordered, start=1)
    ]


def build_winners(
    outcomes: Iterable[BetOutcome],
    final_time_seconds: int,
    vomit_outcome: bool,
    usernames: dict[Hashable, str] | None = None,
) -> list[dict[str, object]]:
    """Group winning bets by type for the admin preview."""

    outcomes = list(outcomes)
    usernames = usernames or {}

    def names(items: list[BetOutcome]) -> list[str]:
        return [usernames.get(item.user_id, str(item.user_id)) for item in items]

    winners: list[dict[str, object]] = []

    over_under = [item for item in outcomes if item.bet_type == TIME_OVER_UNDER and item.won]
    if over_under:
        winners.append(
            {
                "bet_type": TIME_OVER_UNDER,
                "users": names(over_under),
                "points": POINTS_PER_WIN,
                "details": f"Final time: {format_time(final_time_seconds)}",
            }
        )

    guesses = [item for item in outcomes if item.bet_type == EXACT_TIME_GUESS]
    if guesses:
        closest = [item for item in guesses if item.won]
        closest_names = names(closest)
        minimum = min(item.distance or 0 for item in guesses)
        winners.append(
            {
                "bet_type": EXACT_TIME_GUESS,
                "users": closest_names,
                "points": POINTS_PER_WIN,
                "details": f"Closest guess: {', '.join(closest_names)} ({minimum}s off)",
            }
        )

    props = [item for item in outcomes if item.bet_type == VOMIT_PROP and item.won]
    if props:
        winners.append(
            {
                "bet_type": VOMIT_PROP,
                "users": names(props),
                "points": POINTS_PER_WIN,
                "details": "Runner vomited" if vomit_outcome else "Runner did not vomit",
            }
        )
    return winners


def build_preview(
    bets: Iterable[ScorableBet],
    final_time_seconds: int,
    vomit_outcome: bool,
    *,
    seed_user_ids: Iterable[Hashable],
    usernames: dict[Hashable, str] | None = None,
) -> ScoringPreview:
    """Score ``bets`` without persisting anything."""

    outcomes = score_bets(bets, final_time_seconds, vomit_outcome)
    return ScoringPreview(
        winners=build_winners(outcomes, final_time_seconds, vomit_outcome, usernames),
        leaderboard=rank_leaderboard(tally_points(seed_user_ids, outcomes), usernames),
        outcomes=outcomes,
    )
