import asyncio
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import ValidationError

from models.errors import GameError, GameNotFoundError, TransactionConflictError
from models.game import Game
from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
TransactionBody = Callable[[Optional[Game]], Tuple[Optional[Dict[str, Any]], T]]


class FirestoreService:
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop. Switch to AsyncClient once stable.

    One document per game in the games collection, keyed by the join code.
    Updates are partial, addressed by field path ("team1.score",
    "rounds.2.current_points"), so the two teams writing their own fields
    never overwrite each other.
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the service can be instantiated before GCP creds exist
        from google.cloud import firestore
        self._firestore = firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _game_ref(self, game_id: str):
        return self.db.collection(settings.games_collection).document(game_id)

    @staticmethod
    def _to_game(snapshot) -> Optional[Game]:
        if snapshot.exists:
            return Game(**snapshot.to_dict())
        return None

    # ── Game CRUD ─────────────────────────────────────────────────────────────

    async def create_game(self, game: Game) -> bool:
        """Create-if-absent. Returns False when the code is already taken."""
        from google.api_core.exceptions import AlreadyExists

        data = game.to_document()
        try:
            await self._run(lambda: self._game_ref(game.id).create(data))
        except AlreadyExists:
            return False
        return True

    async def get_game(self, game_id: str) -> Optional[Game]:
        doc = await self._run(lambda: self._game_ref(game_id).get())
        return self._to_game(doc)

    async def update_game(self, game_id: str, updates: Dict[str, Any]) -> None:
        from google.api_core.exceptions import NotFound

        try:
            await self._run(lambda: self._game_ref(game_id).update(updates))
        except NotFound:
            raise GameNotFoundError(game_id)

    async def delete_game(self, game_id: str) -> None:
        await self._run(lambda: self._game_ref(game_id).delete())

    async def list_games(self) -> List[Game]:
        query = self.db.collection(settings.games_collection).order_by(
            "created_at", direction=self._firestore.Query.DESCENDING
        )
        docs = await self._run(lambda: list(query.stream()))
        return [Game(**d.to_dict()) for d in docs]

    # ── Transactions ──────────────────────────────────────────────────────────

    async def run_transaction(self, game_id: str, body: TransactionBody) -> T:
        """
        Read-modify-write on one game document. Firestore re-runs `body` when the
        document changed between the read and the commit, so `body` must not
        have side effects of its own.
        """
        from google.api_core.exceptions import Aborted

        ref = self._game_ref(game_id)
        transaction = self.db.transaction(max_attempts=settings.max_transaction_attempts)

        @self._firestore.transactional
        def _in_transaction(txn):
            game = self._to_game(ref.get(transaction=txn))
            updates, result = body(game)
            if updates:
                if game is None:
                    raise GameNotFoundError(game_id)
                txn.update(ref, updates)
            return result

        try:
            return await self._run(lambda: _in_transaction(transaction))
        except (GameError, ValidationError):
            raise
        except (Aborted, ValueError) as exc:
            # The client raises ValueError once max_attempts is exhausted
            logger.warning(f"[{game_id}] Transaction gave up: {exc}")
            raise TransactionConflictError(str(exc)) from exc

    # ── Listeners ─────────────────────────────────────────────────────────────

    def subscribe(self, game_id: str, on_change: Callable[[Optional[Game]], None]) -> Callable[[], None]:
        """
        Watch one game document. Firestore calls back on its own thread; the
        parsed Game (or None once deleted) is handed to the event loop thread.
        """
        loop = asyncio.get_running_loop()

        def _on_snapshot(snapshots, changes, read_time):
            for snapshot in snapshots:
                try:
                    game = self._to_game(snapshot)
                except ValidationError:
                    logger.warning(f"[{game_id}] Ignoring malformed game snapshot", exc_info=True)
                    continue
                loop.call_soon_threadsafe(on_change, game)

        watch = self._game_ref(game_id).on_snapshot(_on_snapshot)
        return watch.unsubscribe


_game_store = None


def get_game_store():
    """Lazy singleton — initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    Use as a FastAPI dependency: Depends(get_game_store)
    """
    global _game_store
    if _game_store is None:
        if settings.store_backend == "memory":
            from services.memory_store import MemoryStore
            _game_store = MemoryStore(max_attempts=settings.max_transaction_attempts)
            logger.info("Using in-memory game store")
        else:
            _game_store = FirestoreService()
    return _game_store
