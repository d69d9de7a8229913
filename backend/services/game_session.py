"""
Client-side game sessions.

GameSession is a player's view: an optimistic local mirror of the game
document (`speculative`) next to the last document the store pushed
(`authoritative`). Player actions run the engine's pure functions on the
mirror first, so the result is known immediately, then the same function is
committed through a store transaction in the background.

If a background commit fails the mirror is thrown away and replaced by the
last pushed document. That is a full rollback, not a merge: other optimistic
changes still in flight are lost with it.

Round points decay only in the mirror, by wall-clock time since the round
became current here. The ticker only sets how often that is refreshed. The
decayed value reaches the store once, as the captured points of a correct
main answer.

SpectatorSession only follows pushes; spectators and admins never keep an
optimistic copy.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple

from engine import lifecycle, scoring
from models.errors import GameError, GameNotFoundError, SyncError, TeamNotFoundError
from models.game import Game, GameStatus, TeamSlot, normalize_game_code
from utils.field_paths import apply_updates
from config import settings

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]
Step = Callable[[Game], Any]


class GameSession:
    def __init__(
        self,
        store,
        game_id: str,
        team: TeamSlot,
        notify: Optional[Notifier] = None,
        tick_interval: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.game_id = normalize_game_code(game_id)
        self.team = team
        self._notify = notify or (lambda message: None)
        # seconds; 0 disables the background ticker (tick() can still be called)
        self.tick_interval = (
            settings.points_decrement_interval_ms / 1000 if tick_interval is None else tick_interval
        )
        self._clock = clock or time.monotonic
        self.authoritative: Optional[Game] = None
        self.speculative: Optional[Game] = None
        self.last_error: Optional[SyncError] = None
        self.ended = False
        self.closed = False
        self._local_points: Dict[int, int] = {}  # round index -> locally decayed points
        self._decay_marks: Dict[int, Tuple[float, int]] = {}  # round index -> (started, points then)
        self._pending: Set[asyncio.Task] = set()
        self._deferred_push = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._ticker: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> "GameSession":
        game = await self.store.get_game(self.game_id)
        if game is None:
            raise GameNotFoundError(self.game_id)
        if game.team(self.team) is None:
            raise TeamNotFoundError(f"No team in slot {self.team.value}")
        self.authoritative = game
        self.speculative = game.model_copy(deep=True)
        self._unsubscribe = self.store.subscribe(self.game_id, self._on_server_push)
        if self.tick_interval > 0:
            self._ticker = asyncio.create_task(self._tick_loop())
        logger.info(f"[{self.game_id}] Session started for {self.team.value}")
        return self

    async def close(self) -> None:
        """Stop listening and ticking; wait for commits already sent."""
        self.closed = True
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        await self.flush()

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        # Let any push queued by those commits land
        await asyncio.sleep(0)

    async def __aenter__(self) -> "GameSession":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Server pushes ─────────────────────────────────────────────────────────

    def _on_server_push(self, game: Optional[Game]) -> None:
        if self.closed:
            return
        if game is None:
            self.ended = True
            self.authoritative = None
            self.speculative = None
            logger.info(f"[{self.game_id}] Game document deleted")
            self._notify(str(GameNotFoundError(self.game_id)))
            return
        self.authoritative = game
        if self._pending:
            # Rebuilt once our own commits settle
            self._deferred_push = True
            return
        self.speculative = self._mirror_of(game)

    def _mirror_of(self, game: Game) -> Game:
        mirror = game.model_copy(deep=True)
        for index, points in self._local_points.items():
            if index < len(mirror.rounds):
                round_ = mirror.rounds[index]
                round_.current_points = min(round_.current_points, points)
        return mirror

    # ── Decay ─────────────────────────────────────────────────────────────────

    async def _tick_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.tick_interval)

    def tick(self, now: Optional[float] = None) -> Optional[int]:
        """
        Bring the team's current round up to date with the clock. The first
        tick on a round starts its countdown. Returns the new value.
        """
        game = self.speculative
        if game is None or game.status != GameStatus.IN_PROGRESS:
            # Paused time does not count; the countdown restarts on resume
            self._decay_marks.clear()
            return None
        team = game.team(self.team)
        if team is None or game.has_finished_all_rounds(self.team):
            return None
        now = self._clock() if now is None else now
        index = team.current_round_index
        round_ = game.rounds[index]
        started, points = self._decay_marks.setdefault(index, (now, round_.current_points))
        elapsed_ms = int((now - started) * 1000)
        round_.current_points = min(round_.current_points, scoring.decay_points(points, elapsed_ms))
        self._local_points[index] = round_.current_points
        return round_.current_points

    # ── Views ─────────────────────────────────────────────────────────────────

    def _mirror(self) -> Game:
        if self.speculative is None:
            raise GameNotFoundError(self.game_id)
        return self.speculative

    @property
    def round_index(self) -> int:
        team = self._mirror().team(self.team)
        return team.current_round_index if team else 0

    @property
    def current_points(self) -> Optional[int]:
        game = self._mirror()
        index = self.round_index
        if index >= len(game.rounds):
            return None
        return game.rounds[index].current_points

    @property
    def score(self) -> int:
        team = self._mirror().team(self.team)
        return team.score if team else 0

    # ── Player actions ────────────────────────────────────────────────────────

    def reveal_letter(self, letter_key: str, answer: str) -> bool:
        """Answer a letter question. Returns whether the answer was right."""
        round_index = self.round_index
        team = self.team

        def step(game: Game):
            return scoring.reveal_letter(game, team, round_index, letter_key, answer)

        outcome = step(self._mirror())
        self._apply(outcome.updates, "letter reveal", step)
        return outcome.correct

    def submit_main_answer(self, answer: str) -> bool:
        """Guess the main answer with the points showing right now."""
        round_index = self.round_index
        points = self.current_points
        team = self.team

        def step(game: Game):
            return scoring.submit_main_answer(game, team, round_index, answer, points=points)

        outcome = step(self._mirror())
        self._apply(outcome.updates, "answer", step)
        if outcome.correct:
            self._local_points.pop(round_index, None)
            self._decay_marks.pop(round_index, None)
            if self._ticker:
                # Start the next round's countdown now, not at the next tick
                self.tick()
        return outcome.correct

    def forfeit(self) -> None:
        team = self.team

        def step(game: Game):
            return scoring.ActionOutcome(correct=True, updates=lifecycle.forfeit(game, team))

        outcome = step(self._mirror())
        self._apply(outcome.updates, "forfeit", step)

    # ── Optimistic apply / background commit ──────────────────────────────────

    def _apply(self, updates: Dict[str, Any], label: str, step: Step) -> None:
        if not updates:
            return
        data = self._mirror().to_document()
        apply_updates(data, updates)
        self.speculative = Game(**data)
        self._commit(label, step)

    def _commit(self, label: str, step: Step) -> None:
        game_id = self.game_id

        def body(game: Optional[Game]):
            if game is None:
                raise GameNotFoundError(game_id)
            outcome = step(game)
            return outcome.updates, outcome

        async def run() -> None:
            try:
                await self.store.run_transaction(game_id, body)
            except Exception as exc:
                self._rollback(label, exc)

        task = asyncio.create_task(run())
        self._pending.add(task)
        task.add_done_callback(self._on_commit_done)

    def _on_commit_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._pending or not self._deferred_push or self.closed:
            return
        self._deferred_push = False
        if self.authoritative is not None:
            self.speculative = self._mirror_of(self.authoritative)

    def _rollback(self, label: str, exc: Exception) -> None:
        reason = str(exc) if isinstance(exc, GameError) else "check connection"
        message = f"Could not save {label}: {reason}"
        logger.warning(f"[{self.game_id}] {self.team.value}: {message}", exc_info=exc)
        error = SyncError(message)
        error.__cause__ = exc
        self.last_error = error
        self._local_points.clear()
        self._decay_marks.clear()
        if self.authoritative is not None:
            self.speculative = self.authoritative.model_copy(deep=True)
        self._notify(message)


class SpectatorSession:
    """Follows the pushed document as-is. No optimism, no decay."""

    def __init__(self, store, game_id: str, on_change: Optional[Callable[[Optional[Game]], None]] = None):
        self.store = store
        self.game_id = normalize_game_code(game_id)
        self.game: Optional[Game] = None
        self._on_change = on_change
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> "SpectatorSession":
        self.game = await self.store.get_game(self.game_id)
        if self.game is None:
            raise GameNotFoundError(self.game_id)
        self._unsubscribe = self.store.subscribe(self.game_id, self._on_server_push)
        return self

    def _on_server_push(self, game: Optional[Game]) -> None:
        if self._unsubscribe is None:
            return
        self.game = game
        if self._on_change:
            self._on_change(game)

    async def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
