"""
Team assignment — who gets team1, who gets team2.

Runs as a single store transaction: read the game, pick a slot, write it,
and start the game when the second slot fills. The store re-runs the body
when two joiners race, so the loser of the race sees the filled slot on its
retry and lands in the other one.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from engine import lifecycle
from models.errors import GameFullError, GameNotFoundError, GameNotJoinableError
from models.game import Game, GameStatus, Team, TeamSlot, _utcnow, normalize_game_code

logger = logging.getLogger(__name__)


class JoinResult(BaseModel):
    team: TeamSlot
    rejoined: bool = False
    started: bool = False


def assign_team(
    game: Optional[Game],
    game_id: str,
    team_name: str,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], JoinResult]:
    """Pure join step. Returns (updates, result)."""
    if game is None:
        raise GameNotFoundError(game_id)

    # Reconnect: a known name gets its slot back, whatever the status.
    existing = game.slot_for_name(team_name)
    if existing is not None:
        return {}, JoinResult(team=existing, rejoined=True)

    if game.status != GameStatus.LOBBY:
        raise GameNotJoinableError()

    if game.team1 is None:
        slot = TeamSlot.TEAM1
    elif game.team2 is None:
        slot = TeamSlot.TEAM2
    else:
        raise GameFullError()

    now = now or _utcnow()
    updates: Dict[str, Any] = {slot.value: Team(name=team_name.strip()).model_dump(mode="json")}
    updates.update(lifecycle.touch(now))

    started = game.team(slot.other) is not None
    if started:
        updates.update(lifecycle.start_game(game, now))
    return updates, JoinResult(team=slot, started=started)


class TeamAssigner:
    def __init__(self, store):
        self.store = store

    async def join_game(self, game_id: str, team_name: str) -> JoinResult:
        game_id = normalize_game_code(game_id)
        result = await self.store.run_transaction(
            game_id, lambda game: assign_team(game, game_id, team_name)
        )
        if result.rejoined:
            logger.info(f"[{game_id}] {team_name} rejoined as {result.team.value}")
        else:
            logger.info(f"[{game_id}] {team_name} joined as {result.team.value}")
        if result.started:
            logger.info(f"[{game_id}] Both teams present — game started")
        return result
