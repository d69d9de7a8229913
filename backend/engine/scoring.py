"""
Scoring & Reveal Engine — pure functions, no I/O.

Responsibilities:
- Letter-slot keys for a main answer ("ALLY" → A_0, L_0, L_1, Y_0)
- Binding an authored question pool to those slots
- Point decay for the live round
- Letter reveals and main-answer submissions, returned as field-path updates

The reveal/submit functions are deterministic given their inputs, so they are
safe to run inside a transaction body that the store may re-execute, and the
client session runs the very same functions against its local mirror.
"""
import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from engine import lifecycle
from models.errors import (
    GameNotInProgressError,
    InsufficientQuestionPoolError,
    NotYourTurnError,
    PreconditionFailedError,
    RoundAlreadyCompletedError,
    TeamNotFoundError,
    UnknownLetterSlotError,
)
from models.game import (
    Game,
    GameStatus,
    LetterQuestion,
    Team,
    TeamSlot,
    LETTER_REVEAL_REWARD,
    INCORRECT_ANSWER_PENALTY,
    POINTS_DECREMENT_AMOUNT,
    POINTS_DECREMENT_INTERVAL,
    normalize_answer,
)


class ActionOutcome(BaseModel):
    correct: bool
    score_delta: int = 0
    already_revealed: bool = False
    finished_game: bool = False
    updates: Dict[str, Any] = {}


# ── Letter slots ──────────────────────────────────────────────────────────────

def letter_slot_keys(answer: str) -> List[str]:
    """
    One key per non-space character, scanned left to right. Repeated letters
    get increasing occurrence indices. Authoring and reveal tracking must both
    go through this function or their keys will drift apart.
    """
    seen: Dict[str, int] = {}
    keys: List[str] = []
    for char in normalize_answer(answer):
        if char.isspace():
            continue
        count = seen.get(char, 0)
        keys.append(f"{char}_{count}")
        seen[char] = count + 1
    return keys


def assign_letter_questions(
    answer: str,
    pool: Sequence[LetterQuestion],
    shuffle: bool = True,
    rng: Optional[random.Random] = None,
) -> Tuple[Dict[str, LetterQuestion], List[LetterQuestion]]:
    """
    Bind pool questions to the answer's letter slots in left-to-right order.
    Returns (bound, leftover). Shuffling happens here, so call this once,
    before any transaction, never from inside a transaction body.
    """
    keys = letter_slot_keys(answer)
    if len(pool) < len(keys):
        raise InsufficientQuestionPoolError(
            f"Answer '{answer}' needs {len(keys)} letter questions but only {len(pool)} were provided"
        )
    ordered = list(pool)
    if shuffle:
        (rng or random).shuffle(ordered)
    bound = dict(zip(keys, ordered[:len(keys)]))
    return bound, ordered[len(keys):]


# ── Decay ─────────────────────────────────────────────────────────────────────

def decay_points(points: int, elapsed_ms: int) -> int:
    """Points left after `elapsed_ms` of play; only whole intervals count."""
    steps = max(0, elapsed_ms) // POINTS_DECREMENT_INTERVAL
    return max(0, points - steps * POINTS_DECREMENT_AMOUNT)


def answers_match(expected: str, submitted: str) -> bool:
    return normalize_answer(expected) == normalize_answer(submitted)


# ── Preconditions ─────────────────────────────────────────────────────────────

def _require_playable(game: Game, slot: TeamSlot, round_index: int) -> Team:
    if game.status != GameStatus.IN_PROGRESS:
        raise GameNotInProgressError(f"Game is {game.status.value}, not in progress")
    team = game.team(slot)
    if team is None:
        raise TeamNotFoundError(f"No team in slot {slot.value}")
    if round_index < 0:
        raise PreconditionFailedError(f"No round {round_index}")
    if round_index in team.completed_rounds() or round_index >= len(game.rounds):
        raise RoundAlreadyCompletedError(f"Round {round_index + 1} is already completed")
    if round_index > team.current_round_index:
        raise PreconditionFailedError(f"Round {round_index + 1} is not open for your team yet")
    if game.turn_restricted and game.current_turn != slot:
        raise NotYourTurnError()
    return team


def next_turn(game: Game, slot: TeamSlot) -> TeamSlot:
    """The other team, unless it has no rounds left to play."""
    if game.has_finished_all_rounds(slot.other) or game.team(slot.other) is None:
        return slot
    return slot.other


def _penalize_and_pass(game: Game, slot: TeamSlot, team: Team, now: Optional[datetime]) -> ActionOutcome:
    updates: Dict[str, Any] = {
        f"{slot.value}.score": team.score - INCORRECT_ANSWER_PENALTY,
        f"{slot.value}.last_answer_correct": False,
        "current_turn": next_turn(game, slot).value,
    }
    updates.update(lifecycle.touch(now))
    return ActionOutcome(correct=False, score_delta=-INCORRECT_ANSWER_PENALTY, updates=updates)


# ── Actions ───────────────────────────────────────────────────────────────────

def reveal_letter(
    game: Game,
    slot: TeamSlot,
    round_index: int,
    letter_key: str,
    answer: str,
    now: Optional[datetime] = None,
) -> ActionOutcome:
    """
    Answer a letter question. Correct: +LETTER_REVEAL_REWARD and the slot is
    revealed for this team, once. Wrong: nothing changes, unless the game is
    turn-restricted, where a wrong guess costs the penalty and passes the turn.
    """
    team = _require_playable(game, slot, round_index)
    round_ = game.rounds[round_index]
    question = round_.letter_questions.get(letter_key)
    if question is None:
        raise UnknownLetterSlotError(f"Round {round_index + 1} has no letter slot {letter_key}")

    if not answers_match(question.answer, answer):
        if game.turn_restricted:
            return _penalize_and_pass(game, slot, team, now)
        return ActionOutcome(correct=False)

    revealed = team.revealed_in(round_index)
    if letter_key in revealed:
        return ActionOutcome(correct=True, already_revealed=True)

    updates: Dict[str, Any] = {
        f"{slot.value}.revealed_letters.{round_index}": revealed + [letter_key],
        f"{slot.value}.score": team.score + LETTER_REVEAL_REWARD,
    }
    updates.update(lifecycle.touch(now))
    return ActionOutcome(correct=True, score_delta=LETTER_REVEAL_REWARD, updates=updates)


def submit_main_answer(
    game: Game,
    slot: TeamSlot,
    round_index: int,
    answer: str,
    points: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ActionOutcome:
    """
    Guess the round's main answer. Correct: the team banks the live point value
    and moves to its next round. Wrong: INCORRECT_ANSWER_PENALTY, retry allowed.

    `points` is the decayed value the player saw when submitting. It is captured
    once by the caller and can only lower the stored value, never raise it.
    """
    team = _require_playable(game, slot, round_index)
    round_ = game.rounds[round_index]

    if not answers_match(round_.main_answer, answer):
        if game.turn_restricted:
            return _penalize_and_pass(game, slot, team, now)
        updates: Dict[str, Any] = {
            f"{slot.value}.score": team.score - INCORRECT_ANSWER_PENALTY,
            f"{slot.value}.last_answer_correct": False,
        }
        updates.update(lifecycle.touch(now))
        return ActionOutcome(correct=False, score_delta=-INCORRECT_ANSWER_PENALTY, updates=updates)

    awarded = round_.current_points if points is None else min(points, round_.current_points)
    awarded = max(0, awarded)
    new_score = team.score + awarded
    new_index = round_index + 1

    updates = {
        f"{slot.value}.score": new_score,
        f"{slot.value}.current_round_index": new_index,
        f"{slot.value}.last_answer_correct": True,
        f"rounds.{round_index}.current_points": awarded,
    }
    if round_.winner is None:
        updates[f"rounds.{round_index}.winner"] = slot.value
    if game.turn_restricted:
        updates["current_turn"] = next_turn(game, slot).value
    updates.update(lifecycle.touch(now))

    projected = {
        f"{slot.value}_index": new_index,
        f"{slot.value}_score": new_score,
    }
    finish = lifecycle.finish_if_complete(game, now=now, **projected)
    updates.update(finish)
    return ActionOutcome(
        correct=True,
        score_delta=awarded,
        finished_game=bool(finish),
        updates=updates,
    )
