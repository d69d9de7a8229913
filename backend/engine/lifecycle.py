"""
Game lifecycle state machine — pure transitions.

    lobby ──► in_progress ◄──► paused
      │            │              │
      └────────────┴──────────────┴──► finished   (terminal)

Every function here takes the current Game and returns a field-path update map
(or raises a precondition error). Nothing touches the store, so the same call
can run inside a retried transaction body or against a client's local mirror.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.errors import (
    GameFinishedError,
    PreconditionFailedError,
    TeamNotFoundError,
)
from models.game import (
    Game,
    GameStatus,
    Round,
    RoundStatus,
    TeamSlot,
    POINTS_START,
    _utcnow,
)

Updates = Dict[str, Any]

ACTIVE_STATUSES = (GameStatus.IN_PROGRESS, GameStatus.PAUSED)


def touch(now: Optional[datetime] = None) -> Updates:
    return {"last_activity_at": (now or _utcnow()).isoformat()}


def winner_by_score(team1_score: int, team2_score: int) -> Optional[TeamSlot]:
    """Higher score wins; equal scores are a draw (no winner)."""
    if team1_score > team2_score:
        return TeamSlot.TEAM1
    if team2_score > team1_score:
        return TeamSlot.TEAM2
    return None


def resolve_winner(game: Game) -> Optional[TeamSlot]:
    if game.forfeited_by:
        return game.forfeited_by.other if game.team(game.forfeited_by.other) else None
    if not game.team1 or not game.team2:
        return None
    return winner_by_score(game.team1.score, game.team2.score)


def _finish(winner: Optional[TeamSlot], now: Optional[datetime]) -> Updates:
    updates: Updates = {"status": GameStatus.FINISHED.value, "winner": winner.value if winner else None}
    updates.update(touch(now))
    return updates


def _require_not_finished(game: Game) -> None:
    if game.status == GameStatus.FINISHED:
        raise GameFinishedError()


# ── Start / pause ─────────────────────────────────────────────────────────────

def start_game(game: Game, now: Optional[datetime] = None) -> Updates:
    """lobby → in_progress. Triggered by the second join or by the admin."""
    if game.status != GameStatus.LOBBY:
        raise PreconditionFailedError("Game is not in lobby state")
    now = now or _utcnow()
    updates: Updates = {
        "status": GameStatus.IN_PROGRESS.value,
        "game_started_at": now.isoformat(),
        f"rounds.{game.current_round_index}.status": RoundStatus.IN_PROGRESS.value,
    }
    if game.turn_restricted:
        updates["current_turn"] = TeamSlot.TEAM1.value
    updates.update(touch(now))
    return updates


def toggle_pause(game: Game, now: Optional[datetime] = None) -> Updates:
    """in_progress ⇄ paused. No-op once finished."""
    if game.status == GameStatus.FINISHED:
        return {}
    if game.status == GameStatus.LOBBY:
        raise PreconditionFailedError("Game has not started yet")
    new_status = GameStatus.PAUSED if game.status == GameStatus.IN_PROGRESS else GameStatus.IN_PROGRESS
    updates: Updates = {
        "status": new_status.value,
        f"rounds.{game.current_round_index}.status": new_status.value,
    }
    updates.update(touch(now))
    return updates


# ── Round advance / termination ───────────────────────────────────────────────

def skip_round(game: Game, now: Optional[datetime] = None) -> Updates:
    """
    Advance the master round pointer. Team progress pointers are not touched.
    Skipping past the last round finishes the game, winner decided on score.
    """
    _require_not_finished(game)
    if game.status not in ACTIVE_STATUSES:
        raise PreconditionFailedError("Game has not started yet")

    index = game.current_round_index
    if index >= len(game.rounds) - 1:
        updates = _finish(resolve_winner(game), now)
        updates[f"rounds.{index}.status"] = RoundStatus.FINISHED.value
        return updates

    updates = {
        f"rounds.{index}.status": RoundStatus.FINISHED.value,
        "current_round_index": index + 1,
        f"rounds.{index + 1}.status": game.status.value,
    }
    updates.update(touch(now))
    return updates


def forfeit(game: Game, slot: TeamSlot, now: Optional[datetime] = None) -> Updates:
    """Team concedes: the other team wins, the game ends. Irreversible."""
    _require_not_finished(game)
    if game.team(slot) is None:
        raise TeamNotFoundError(f"No team in slot {slot.value}")
    winner = slot.other if game.team(slot.other) else None
    updates = _finish(winner, now)
    updates["forfeited_by"] = slot.value
    return updates


def disqualify(game: Game, slot: TeamSlot, now: Optional[datetime] = None) -> Updates:
    """Admin-initiated forfeit; same effect on the document."""
    return forfeit(game, slot, now)


def finish_if_complete(
    game: Game,
    team1_index: Optional[int] = None,
    team2_index: Optional[int] = None,
    team1_score: Optional[int] = None,
    team2_score: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Updates:
    """
    Finalization check: when both teams have passed the last round the game is
    over. Callers about to change one team's progress pass the projected values
    so the check and the progress change commit together.
    """
    if game.status == GameStatus.FINISHED or not game.team1 or not game.team2:
        return {}
    total = len(game.rounds)
    idx1 = game.team1.current_round_index if team1_index is None else team1_index
    idx2 = game.team2.current_round_index if team2_index is None else team2_index
    if idx1 < total or idx2 < total:
        return {}
    score1 = game.team1.score if team1_score is None else team1_score
    score2 = game.team2.score if team2_score is None else team2_score
    return _finish(winner_by_score(score1, score2), now)


# ── Admin maintenance ─────────────────────────────────────────────────────────

def adjust_score(game: Game, slot: TeamSlot, amount: int, now: Optional[datetime] = None) -> Updates:
    team = game.team(slot)
    if team is None:
        raise TeamNotFoundError(f"No team in slot {slot.value}")
    updates: Updates = {f"{slot.value}.score": team.score + amount}
    updates.update(touch(now))
    return updates


def fresh_round(round_: Round) -> Round:
    return round_.model_copy(update={
        "current_points": POINTS_START,
        "status": RoundStatus.PENDING,
        "winner": None,
    })


def reset_game(game: Game, now: Optional[datetime] = None) -> Updates:
    """Back to the lobby with the same rounds: teams, points and results cleared."""
    rounds = [fresh_round(r) for r in game.rounds]
    updates: Updates = {
        "status": GameStatus.LOBBY.value,
        "team1": None,
        "team2": None,
        "forfeited_by": None,
        "winner": None,
        "current_turn": None,
        "game_started_at": None,
        "current_round_index": 0,
        "rounds": {str(i): r.model_dump(mode="json") for i, r in enumerate(rounds)},
    }
    updates.update(touch(now))
    return updates


def replace_rounds(game: Game, rounds: List[Round], now: Optional[datetime] = None) -> Updates:
    """Swap in edited rounds. Round count is fixed once the game has started."""
    if game.status != GameStatus.LOBBY:
        raise PreconditionFailedError("Rounds can only be edited before the game starts")
    if not rounds:
        raise PreconditionFailedError("At least one round is required")
    updates: Updates = {
        "rounds": {str(i): r.model_dump(mode="json") for i, r in enumerate(rounds)},
        "current_round_index": 0,
    }
    updates.update(touch(now))
    return updates
