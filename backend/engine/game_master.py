"""
Game Master — deterministic game control on top of the document store.

Responsibilities:
- Game creation (rounds built once, then a free join code claimed atomically)
- Admin controls: start, pause/resume, skip round, disqualify, score adjust,
  reset, round edits, delete
- Player commits: letter reveal, main answer, forfeit

Rules live in engine.lifecycle and engine.scoring as pure functions; this class
only wraps them in store transactions and checks who is allowed to call them.
"""
import logging
import random
from typing import Any, Callable, Dict, Optional, Tuple

from engine import lifecycle, scoring
from engine.round_builder import build_rounds, generate_game_code
from engine.scoring import ActionOutcome
from models.errors import GameCodeExhaustedError, GameNotFoundError, NotAuthorizedError
from models.game import Game, GameDefinition, GameStatus, TeamSlot, normalize_game_code
from config import settings

logger = logging.getLogger(__name__)

Step = Callable[[Game], Tuple[Dict[str, Any], Any]]


class GameMaster:
    """
    Deterministic game logic engine.
    All methods read/write the game document through the store's transactions.
    """

    def __init__(self, store):
        self.store = store

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def get_game(self, game_id: str) -> Game:
        game_id = normalize_game_code(game_id)
        game = await self.store.get_game(game_id)
        if game is None:
            raise GameNotFoundError(game_id)
        return game

    async def _transact(self, game_id: str, step: Step, uid: Optional[str] = None):
        """Run `step` on the live document; `uid` set means admin-only."""
        game_id = normalize_game_code(game_id)

        def body(game: Optional[Game]):
            if game is None:
                raise GameNotFoundError(game_id)
            if uid is not None and game.creator_id != uid:
                raise NotAuthorizedError()
            return step(game)

        return await self.store.run_transaction(game_id, body)

    # ── Creation and authoring ────────────────────────────────────────────────

    async def create_game(
        self,
        definition: GameDefinition,
        creator_id: str,
        shuffle: bool = True,
        turn_restricted: bool = False,
        rng: Optional[random.Random] = None,
    ) -> Game:
        rounds = build_rounds(definition, shuffle=shuffle, rng=rng)
        for _ in range(settings.game_code_attempts):
            game = Game(
                id=generate_game_code(rng=rng),
                creator_id=creator_id,
                title=definition.title,
                rounds=rounds,
                turn_restricted=turn_restricted,
            )
            if await self.store.create_game(game):
                logger.info(f"[{game.id}] Game created by {creator_id} with {len(rounds)} round(s)")
                return game
            logger.info(f"Game code {game.id} already taken — trying another")
        raise GameCodeExhaustedError(
            f"No free game code after {settings.game_code_attempts} attempts"
        )

    async def update_rounds(
        self,
        game_id: str,
        uid: str,
        definition: GameDefinition,
        shuffle: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        # Bound before the transaction: a retry must not reshuffle
        rounds = build_rounds(definition, shuffle=shuffle, rng=rng)
        await self._transact(
            game_id, lambda game: (lifecycle.replace_rounds(game, rounds), None), uid
        )
        logger.info(f"[{game_id}] Rounds replaced ({len(rounds)} round(s))")

    # ── Admin controls ────────────────────────────────────────────────────────

    async def start_game(self, game_id: str, uid: str) -> None:
        await self._transact(game_id, lambda game: (lifecycle.start_game(game), None), uid)
        logger.info(f"[{game_id}] Started by admin")

    async def toggle_pause(self, game_id: str, uid: str) -> GameStatus:
        def step(game: Game):
            updates = lifecycle.toggle_pause(game)
            return updates, GameStatus(updates.get("status", game.status.value))

        status = await self._transact(game_id, step, uid)
        logger.info(f"[{game_id}] Status → {status.value}")
        return status

    async def skip_round(self, game_id: str, uid: str) -> Game:
        def step(game: Game):
            updates = lifecycle.skip_round(game)
            return updates, updates.get("current_round_index", game.current_round_index)

        index = await self._transact(game_id, step, uid)
        game = await self.get_game(game_id)
        if game.status == GameStatus.FINISHED:
            logger.info(f"[{game_id}] Skipped past the last round — game finished")
        else:
            logger.info(f"[{game_id}] Master round → {index + 1}/{len(game.rounds)}")
        return game

    async def disqualify(self, game_id: str, uid: str, team: TeamSlot) -> None:
        await self._transact(game_id, lambda game: (lifecycle.disqualify(game, team), None), uid)
        logger.info(f"[{game_id}] {team.value} disqualified")

    async def adjust_score(self, game_id: str, uid: str, team: TeamSlot, amount: int, reason: str = "") -> int:
        def step(game: Game):
            updates = lifecycle.adjust_score(game, team, amount)
            return updates, updates[f"{team.value}.score"]

        score = await self._transact(game_id, step, uid)
        logger.info(f"[{game_id}] {team.value} score adjusted by {amount} ({reason or 'no reason'}) → {score}")
        return score

    async def reset_game(self, game_id: str, uid: str) -> None:
        await self._transact(game_id, lambda game: (lifecycle.reset_game(game), None), uid)
        logger.info(f"[{game_id}] Reset to lobby")

    async def delete_game(self, game_id: str, uid: str) -> None:
        game = await self.get_game(game_id)
        if game.creator_id != uid:
            raise NotAuthorizedError()
        await self.store.delete_game(game.id)
        logger.info(f"[{game_id}] Deleted")

    # ── Player commits ────────────────────────────────────────────────────────

    async def reveal_letter(
        self, game_id: str, team: TeamSlot, round_index: int, letter_key: str, answer: str
    ) -> ActionOutcome:
        def step(game: Game):
            outcome = scoring.reveal_letter(game, team, round_index, letter_key, answer)
            return outcome.updates, outcome

        outcome = await self._transact(game_id, step)
        if outcome.correct and not outcome.already_revealed:
            logger.info(f"[{game_id}] {team.value} revealed {letter_key} in round {round_index + 1}")
        return outcome

    async def submit_main_answer(
        self,
        game_id: str,
        team: TeamSlot,
        round_index: int,
        answer: str,
        points: Optional[int] = None,
    ) -> ActionOutcome:
        def step(game: Game):
            outcome = scoring.submit_main_answer(game, team, round_index, answer, points=points)
            return outcome.updates, outcome

        outcome = await self._transact(game_id, step)
        if outcome.correct:
            logger.info(f"[{game_id}] {team.value} solved round {round_index + 1} for {outcome.score_delta} points")
        if outcome.finished_game:
            logger.info(f"[{game_id}] Both teams finished all rounds — game over")
        return outcome

    async def forfeit(self, game_id: str, team: TeamSlot) -> None:
        await self._transact(game_id, lambda game: (lifecycle.forfeit(game, team), None))
        logger.info(f"[{game_id}] {team.value} forfeited")
