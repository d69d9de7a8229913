import asyncio
import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from models.errors import GameNotFoundError, TransactionConflictError
from models.game import Game
from utils.field_paths import apply_updates

logger = logging.getLogger(__name__)

T = TypeVar("T")
TransactionBody = Callable[[Optional[Game]], Tuple[Optional[Dict[str, Any]], T]]


class MemoryStore:
    """
    In-process game store with the same contract as FirestoreService.
    Used for local development (STORE_BACKEND=memory) and tests.

    Transactions are optimistic: the body runs against a snapshot, the store
    yields to the event loop, then commits only if nobody else wrote the
    document meanwhile, otherwise the body is re-run.
    """

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._docs: Dict[str, Dict[str, Any]] = {}
        # Survives deletes so a delete also conflicts with an open transaction
        self._versions: Dict[str, int] = {}
        self._listeners: Dict[str, List[Callable[[Optional[Game]], None]]] = {}
        self.transaction_attempts = 0

    # ── Internals ─────────────────────────────────────────────────────────────

    def _load(self, game_id: str) -> Optional[Game]:
        data = self._docs.get(game_id)
        return Game(**copy.deepcopy(data)) if data is not None else None

    def _bump(self, game_id: str) -> None:
        self._versions[game_id] = self._versions.get(game_id, 0) + 1
        self._notify(game_id)

    def _notify(self, game_id: str) -> None:
        listeners = self._listeners.get(game_id)
        if not listeners:
            return
        loop = asyncio.get_running_loop()
        for listener in list(listeners):
            # Each listener gets its own copy, pushed asynchronously like a snapshot
            loop.call_soon(listener, self._load(game_id))

    # ── Game CRUD ─────────────────────────────────────────────────────────────

    async def create_game(self, game: Game) -> bool:
        if game.id in self._docs:
            return False
        self._docs[game.id] = game.to_document()
        self._bump(game.id)
        return True

    async def get_game(self, game_id: str) -> Optional[Game]:
        return self._load(game_id)

    async def update_game(self, game_id: str, updates: Dict[str, Any]) -> None:
        if game_id not in self._docs:
            raise GameNotFoundError(game_id)
        apply_updates(self._docs[game_id], copy.deepcopy(updates))
        self._bump(game_id)

    async def delete_game(self, game_id: str) -> None:
        if self._docs.pop(game_id, None) is not None:
            self._bump(game_id)

    async def list_games(self) -> List[Game]:
        games = [self._load(game_id) for game_id in self._docs]
        return sorted(games, key=lambda g: g.created_at, reverse=True)

    # ── Transactions ──────────────────────────────────────────────────────────

    async def run_transaction(self, game_id: str, body: TransactionBody) -> T:
        for attempt in range(1, self.max_attempts + 1):
            self.transaction_attempts += 1
            version = self._versions.get(game_id, 0)
            updates, result = body(self._load(game_id))
            await asyncio.sleep(0)
            if self._versions.get(game_id, 0) != version:
                logger.debug(f"[{game_id}] Transaction conflict on attempt {attempt}, retrying")
                continue
            if updates:
                await self.update_game(game_id, updates)
            return result
        raise TransactionConflictError(
            f"Transaction on game {game_id} failed after {self.max_attempts} attempts"
        )

    # ── Listeners ─────────────────────────────────────────────────────────────

    def subscribe(self, game_id: str, on_change: Callable[[Optional[Game]], None]) -> Callable[[], None]:
        """Push the current document now and after every commit. Returns unsubscribe."""
        self._listeners.setdefault(game_id, []).append(on_change)
        asyncio.get_running_loop().call_soon(on_change, self._load(game_id))

        def unsubscribe() -> None:
            listeners = self._listeners.get(game_id, [])
            if on_change in listeners:
                listeners.remove(on_change)
            if not listeners:
                self._listeners.pop(game_id, None)

        return unsubscribe
