"""
Game HTTP endpoints.

Routes:
  POST   /api/auth/anonymous                 — Mint an anonymous uid
  POST   /api/games                          — Create a game from a definition
  GET    /api/games                          — All games, newest first (admin list)
  GET    /api/games/{game_id}                — Game state (answers hidden unless creator/finished)
  PUT    /api/games/{game_id}/rounds         — Replace rounds (creator, lobby only)
  DELETE /api/games/{game_id}                — Delete game (creator)
  POST   /api/games/{game_id}/join           — Team joins; second team starts the game
  POST   /api/games/{game_id}/start          — Creator starts the game early
  POST   /api/games/{game_id}/pause          — Creator toggles pause/resume
  POST   /api/games/{game_id}/skip           — Creator advances the master round
  POST   /api/games/{game_id}/reset          — Creator resets to lobby
  POST   /api/games/{game_id}/disqualify     — Creator disqualifies a team
  POST   /api/games/{game_id}/adjust-score   — Creator adds a bonus/penalty
  POST   /api/games/{game_id}/reveal         — Team answers a letter question
  POST   /api/games/{game_id}/answer         — Team answers the main question
  POST   /api/games/{game_id}/forfeit        — Team concedes

GameError subclasses raised below are turned into HTTP errors by the
handler registered in main.py.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from engine.game_master import GameMaster
from engine.team_assigner import TeamAssigner
from models.game import (
    ActionResponse,
    AdjustScoreRequest,
    CreateGameRequest,
    CreateGameResponse,
    GameDefinition,
    JoinGameRequest,
    JoinGameResponse,
    normalize_game_code,
    RevealLetterRequest,
    SubmitAnswerRequest,
    TeamRequest,
)
from services.firestore_service import get_game_store
from services.identity_service import IdentityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["games"])


def get_game_master(store=Depends(get_game_store)) -> GameMaster:
    return GameMaster(store)


def _score(game, team) -> int:
    t = game.team(team)
    return t.score if t else 0


# ── Identity ──────────────────────────────────────────────────────────────────

@router.post("/auth/anonymous", status_code=201)
async def sign_in_anonymously():
    user = await IdentityService().sign_in_anonymously()
    return {"uid": user.uid}


# ── Authoring ─────────────────────────────────────────────────────────────────

@router.post("/games", response_model=CreateGameResponse, status_code=201)
async def create_game(body: CreateGameRequest, gm: GameMaster = Depends(get_game_master)):
    """Bind letter questions, claim a free code, persist the game in the lobby."""
    game = await gm.create_game(
        body,
        creator_id=body.creator_id,
        shuffle=body.shuffle_letter_questions,
        turn_restricted=body.turn_restricted,
    )
    return CreateGameResponse(game_id=game.id, creator_id=game.creator_id)


@router.get("/games")
async def list_games(store=Depends(get_game_store)):
    games = await store.list_games()
    return {
        "games": [
            {
                "game_id": g.id,
                "title": g.title,
                "status": g.status.value,
                "team1": g.team1.name if g.team1 else None,
                "team2": g.team2.name if g.team2 else None,
                "created_at": g.created_at.isoformat(),
            }
            for g in games
        ]
    }


@router.get("/games/{game_id}")
async def get_game(
    game_id: str,
    uid: Optional[str] = Query(None, description="Caller uid; the creator sees answers"),
    gm: GameMaster = Depends(get_game_master),
):
    game = await gm.get_game(game_id)
    return game.to_public(reveal_answers=uid is not None and uid == game.creator_id)


@router.put("/games/{game_id}/rounds", status_code=200)
async def update_rounds(
    game_id: str,
    body: GameDefinition,
    uid: str = Query(..., description="Must match the game's creator_id"),
    shuffle: bool = Query(True),
    gm: GameMaster = Depends(get_game_master),
):
    await gm.update_rounds(game_id, uid, body, shuffle=shuffle)
    return {"status": "saved", "game_id": normalize_game_code(game_id), "rounds": len(body.rounds)}


@router.delete("/games/{game_id}", status_code=200)
async def delete_game(game_id: str, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)):
    await gm.delete_game(game_id, uid)
    return {"status": "deleted", "game_id": normalize_game_code(game_id)}


# ── Joining ───────────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/join", response_model=JoinGameResponse)
async def join_game(game_id: str, body: JoinGameRequest, store=Depends(get_game_store)):
    """Assign the team to a free slot, or hand back its slot on reconnect."""
    result = await TeamAssigner(store).join_game(game_id, body.team_name)
    return JoinGameResponse(game_id=normalize_game_code(game_id), team=result.team, started=result.started)


# ── Admin controls ────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/start")
async def start_game(game_id: str, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)):
    await gm.start_game(game_id, uid)
    return {"status": "in_progress", "game_id": normalize_game_code(game_id)}


@router.post("/games/{game_id}/pause")
async def toggle_pause(game_id: str, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)):
    status = await gm.toggle_pause(game_id, uid)
    return {"status": status.value, "game_id": normalize_game_code(game_id)}


@router.post("/games/{game_id}/skip")
async def skip_round(game_id: str, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)):
    game = await gm.skip_round(game_id, uid)
    return {
        "status": game.status.value,
        "current_round_index": game.current_round_index,
        "winner": game.winner.value if game.winner else None,
    }


@router.post("/games/{game_id}/reset")
async def reset_game(game_id: str, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)):
    await gm.reset_game(game_id, uid)
    return {"status": "lobby", "game_id": normalize_game_code(game_id)}


@router.post("/games/{game_id}/disqualify")
async def disqualify(
    game_id: str, body: TeamRequest, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)
):
    await gm.disqualify(game_id, uid, body.team)
    game = await gm.get_game(game_id)
    return {"status": game.status.value, "winner": game.winner.value if game.winner else None}


@router.post("/games/{game_id}/adjust-score")
async def adjust_score(
    game_id: str, body: AdjustScoreRequest, uid: str = Query(...), gm: GameMaster = Depends(get_game_master)
):
    score = await gm.adjust_score(game_id, uid, body.team, body.amount, body.reason)
    return {"team": body.team.value, "score": score}


# ── Player commits ────────────────────────────────────────────────────────────

@router.post("/games/{game_id}/reveal", response_model=ActionResponse)
async def reveal_letter(game_id: str, body: RevealLetterRequest, gm: GameMaster = Depends(get_game_master)):
    outcome = await gm.reveal_letter(game_id, body.team, body.round_index, body.letter_key, body.answer)
    game = await gm.get_game(game_id)
    return ActionResponse(correct=outcome.correct, score=_score(game, body.team))


@router.post("/games/{game_id}/answer", response_model=ActionResponse)
async def submit_answer(game_id: str, body: SubmitAnswerRequest, gm: GameMaster = Depends(get_game_master)):
    outcome = await gm.submit_main_answer(game_id, body.team, body.round_index, body.answer, body.points)
    game = await gm.get_game(game_id)
    return ActionResponse(correct=outcome.correct, score=_score(game, body.team))


@router.post("/games/{game_id}/forfeit")
async def forfeit(game_id: str, body: TeamRequest, gm: GameMaster = Depends(get_game_master)):
    await gm.forfeit(game_id, body.team)
    game = await gm.get_game(game_id)
    return {"status": game.status.value, "winner": game.winner.value if game.winner else None}
