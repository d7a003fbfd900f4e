"""Pure duel rules: goal times, round settlement and match status transitions.

Every function takes a frozen Match and returns a new one; nothing here
touches connections, timers or storage.
"""

import math
import random
from datetime import datetime, timedelta

from game.logic.exceptions import InvalidStateError
from game.logic.settings import DuelSettings
from shared.dal.models import Match, MatchStatus, PlayerRole, RoundResult

_ALLOWED_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.WAITING: frozenset(
        {MatchStatus.STARTING, MatchStatus.ACTIVE, MatchStatus.CANCELLED, MatchStatus.TIMEOUT},
    ),
    MatchStatus.STARTING: frozenset(
        {MatchStatus.ACTIVE, MatchStatus.FINISHED, MatchStatus.CANCELLED, MatchStatus.TIMEOUT},
    ),
    MatchStatus.ACTIVE: frozenset({MatchStatus.FINISHED, MatchStatus.CANCELLED, MatchStatus.TIMEOUT}),
    MatchStatus.FINISHED: frozenset(),
    MatchStatus.CANCELLED: frozenset(),
    MatchStatus.TIMEOUT: frozenset(),
}


def generate_goal_time(rng: random.Random, settings: DuelSettings | None = None) -> int:
    """Uniform random goal time in milliseconds, bounds inclusive."""
    settings = settings or DuelSettings()
    return rng.randint(settings.goal_time_min_ms, settings.goal_time_max_ms)


def difference(elapsed: int | None, goal_time: int) -> int | None:
    if elapsed is None:
        return None
    return abs(elapsed - goal_time)


def rounds_to_win(total_rounds: int) -> int:
    return math.ceil(total_rounds / 2)


def transition(match: Match, status: MatchStatus, **changes: object) -> Match:
    """Move a match to a new status, rejecting non-monotonic transitions."""
    if status != match.status and status not in _ALLOWED_TRANSITIONS[match.status]:
        raise InvalidStateError(f"Match cannot move from {match.status} to {status}")
    return match.model_copy(update={"status": status, **changes})


def record_click(match: Match, role: PlayerRole, elapsed: int, clicked_at: datetime) -> Match:
    if match.is_terminal:
        raise InvalidStateError(f"Match is {match.status}")
    if match.time_of(role) is not None:
        raise InvalidStateError("You already clicked in this round")
    return match.model_copy(update={f"{role}_time": elapsed, f"{role}_clicked_at": clicked_at})


def round_winner(match: Match) -> PlayerRole | None:
    """Closest to the goal wins; a missing time loses; equal distance is a draw."""
    diff1 = difference(match.player1_time, match.goal_time)
    diff2 = difference(match.player2_time, match.goal_time)
    if diff1 is None and diff2 is None:
        return None
    if diff2 is None or (diff1 is not None and diff1 < diff2):
        return PlayerRole.PLAYER1
    if diff1 is None or diff2 < diff1:
        return PlayerRole.PLAYER2
    return None


def settle_round(match: Match, completed_at: datetime) -> tuple[Match, RoundResult]:
    """Append the current round to the history and credit its winner."""
    winner = round_winner(match)
    result = RoundResult(
        round_number=match.current_round,
        goal_time=match.goal_time,
        player1_time=match.player1_time,
        player2_time=match.player2_time,
        player1_difference=difference(match.player1_time, match.goal_time),
        player2_difference=difference(match.player2_time, match.goal_time),
        round_winner=match.player_id(winner) if winner is not None else None,
        completed_at=completed_at,
    )
    update: dict[str, object] = {"rounds": (*match.rounds, result)}
    if winner is not None:
        update[f"{winner}_score"] = match.score_of(winner) + 1
    return match.model_copy(update=update), result


def is_match_decided(match: Match) -> bool:
    needed = rounds_to_win(match.total_rounds)
    return (
        match.current_round >= match.total_rounds
        or match.player1_score >= needed
        or match.player2_score >= needed
    )


def advance_round(match: Match, goal_time: int) -> Match:
    if is_match_decided(match):
        raise InvalidStateError("Match is already decided")
    return match.model_copy(
        update={
            "current_round": match.current_round + 1,
            "goal_time": goal_time,
            "player1_time": None,
            "player2_time": None,
            "player1_clicked_at": None,
            "player2_clicked_at": None,
        },
    )


def replay_round(match: Match) -> Match:
    """Drop the clicks of the current round so it can be played again."""
    return match.model_copy(
        update={
            "player1_time": None,
            "player2_time": None,
            "player1_clicked_at": None,
            "player2_clicked_at": None,
        },
    )


def overall_winner(match: Match) -> PlayerRole | None:
    if match.player1_score > match.player2_score:
        return PlayerRole.PLAYER1
    if match.player2_score > match.player1_score:
        return PlayerRole.PLAYER2
    return None


def finish(match: Match, ended_at: datetime) -> Match:
    winner = overall_winner(match)
    return transition(
        match,
        MatchStatus.FINISHED,
        winner=match.player_id(winner) if winner is not None else None,
        game_ended_at=ended_at,
    )


def forfeit(match: Match, winner: PlayerRole, ended_at: datetime) -> Match:
    return transition(
        match,
        MatchStatus.FINISHED,
        winner=match.player_id(winner),
        forfeit=True,
        game_ended_at=ended_at,
    )


def terminate(match: Match, status: MatchStatus, reason: str, ended_at: datetime) -> Match:
    """Cancel or time out a match without a winner."""
    if status not in (MatchStatus.CANCELLED, MatchStatus.TIMEOUT):
        raise ValueError(f"terminate() expects cancelled or timeout, got {status}")
    return transition(match, status, cancel_reason=reason, game_ended_at=ended_at)


def best_time(match: Match, role: PlayerRole) -> int | None:
    """Smallest distance from the goal this player achieved over the match's rounds."""
    diffs = [d for r in match.rounds if (d := r.difference_of(role)) is not None]
    return min(diffs, default=None)


def duration_ms(match: Match) -> int:
    if match.game_started_at is None or match.game_ended_at is None:
        return 0
    return (match.game_ended_at - match.game_started_at) // timedelta(milliseconds=1)
