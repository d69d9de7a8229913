from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, timezone
import re


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


# ── Game rules ────────────────────────────────────────────────────────────────

POINTS_START = 1000
POINTS_DECREMENT_AMOUNT = 10
POINTS_DECREMENT_INTERVAL = 5000  # ms
LETTER_REVEAL_REWARD = 10
INCORRECT_ANSWER_PENALTY = 20
GAME_CODE_LENGTH = 4
GAME_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Curly quotes and the okina all count as a plain apostrophe in answers.
_APOSTROPHES = re.compile("[’‘ʻ]")
# Latin and Cyrillic capitals, with the Uzbek Cyrillic letters outside А-Я
MAIN_ANSWER_PATTERN = re.compile(r"^[A-ZА-ЯЁЎҚҒҲ\s']+$")


def normalize_answer(text: str) -> str:
    """Uppercase, trim and fold apostrophe variants so answers compare cleanly."""
    if not text:
        return ""
    return _APOSTROPHES.sub("'", text.strip().upper())


def normalize_game_code(code: str) -> str:
    """Join codes are case-insensitive; stored ids are upper case."""
    return code.strip().upper()


class GameStatus(str, Enum):
    LOBBY = "lobby"          # waiting for the second team
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"        # admin toggle
    FINISHED = "finished"    # terminal


class RoundStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    FINISHED = "finished"


class TeamSlot(str, Enum):
    TEAM1 = "team1"
    TEAM2 = "team2"

    @property
    def other(self) -> "TeamSlot":
        return TeamSlot.TEAM2 if self is TeamSlot.TEAM1 else TeamSlot.TEAM1


# ── Persisted document ────────────────────────────────────────────────────────

class LetterQuestion(BaseModel):
    question: str
    answer: str


class Round(BaseModel):
    main_question: str
    main_answer: str
    # Keyed by letter-slot key ("A_0", "L_1", ...), bound once when the round is built
    letter_questions: Dict[str, LetterQuestion] = {}
    unassigned_letter_questions: List[LetterQuestion] = []
    current_points: int = POINTS_START
    status: RoundStatus = RoundStatus.PENDING
    winner: Optional[TeamSlot] = None  # first team to solve it; progress lives on Team


class Team(BaseModel):
    name: str
    score: int = 0  # no floor, penalties can take it negative
    current_round_index: int = 0
    # round index (as string, Firestore map keys are strings) -> revealed slot keys
    revealed_letters: Dict[str, List[str]] = {}
    last_answer_correct: Optional[bool] = None

    def revealed_in(self, round_index: int) -> List[str]:
        return self.revealed_letters.get(str(round_index), [])

    def completed_rounds(self) -> List[int]:
        return list(range(self.current_round_index))


class Game(BaseModel):
    id: str
    creator_id: str
    title: str = ""
    rounds: List[Round] = Field(min_length=1)
    current_round_index: int = 0  # master pointer, admin "skip round" only
    status: GameStatus = GameStatus.LOBBY
    team1: Optional[Team] = None
    team2: Optional[Team] = None
    forfeited_by: Optional[TeamSlot] = None
    winner: Optional[TeamSlot] = None  # unset on a draw
    turn_restricted: bool = False
    current_turn: Optional[TeamSlot] = None
    created_at: datetime = Field(default_factory=_utcnow)
    game_started_at: Optional[datetime] = None
    last_activity_at: datetime = Field(default_factory=_utcnow)

    # Rounds are stored as a map keyed by index so "rounds.<i>.<field>" is a valid
    # field path for partial updates. In Python they are an ordered list.
    @field_validator("rounds", mode="before")
    @classmethod
    def _rounds_from_map(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value[k] for k in sorted(value, key=int)]
        return value

    @field_serializer("rounds")
    def _rounds_to_map(self, rounds: List[Round]) -> Dict[str, Round]:
        return {str(i): r for i, r in enumerate(rounds)}

    def team(self, slot: TeamSlot) -> Optional[Team]:
        return self.team1 if slot is TeamSlot.TEAM1 else self.team2

    def slot_for_name(self, name: str) -> Optional[TeamSlot]:
        wanted = name.strip().casefold()
        for slot in TeamSlot:
            team = self.team(slot)
            if team and team.name.strip().casefold() == wanted:
                return slot
        return None

    def has_finished_all_rounds(self, slot: TeamSlot) -> bool:
        team = self.team(slot)
        return team is not None and team.current_round_index >= len(self.rounds)

    def to_document(self) -> Dict[str, Any]:
        """JSON-safe dict in the shape written to the document store."""
        return self.model_dump(mode="json")

    def to_public(self, reveal_answers: bool = False) -> Dict[str, Any]:
        """Wire representation. Answers stay hidden until the game ends unless asked."""
        data = self.to_document()
        if reveal_answers or self.status == GameStatus.FINISHED:
            return data
        for round_data in data["rounds"].values():
            round_data["main_answer"] = None
            round_data["unassigned_letter_questions"] = []
            for lq in round_data["letter_questions"].values():
                lq["answer"] = None
        return data


# ── Authoring format (JSON import/export) ─────────────────────────────────────

class DefinitionLetterQuestion(BaseModel):
    letter: str = ""  # authoring hint only, binding is by pool order
    question: str
    answer: str


class RoundDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    main_question: str = Field(alias="mainQuestion", min_length=5)
    main_answer: str = Field(alias="mainAnswer", min_length=1)
    letter_questions: List[DefinitionLetterQuestion] = Field(alias="letterQuestions", default=[])

    @field_validator("main_answer")
    @classmethod
    def _check_main_answer(cls, value: str) -> str:
        value = normalize_answer(value)
        if not MAIN_ANSWER_PATTERN.match(value):
            raise ValueError("Main answer can only contain letters, apostrophes, and spaces.")
        return value


class GameDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    rounds: List[RoundDefinition] = Field(min_length=1)


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateGameRequest(GameDefinition):
    creator_id: str
    shuffle_letter_questions: bool = True
    turn_restricted: bool = False


class CreateGameResponse(BaseModel):
    game_id: str
    creator_id: str


class JoinGameRequest(BaseModel):
    # Length limits apply to the trimmed name
    model_config = ConfigDict(str_strip_whitespace=True)

    team_name: str = Field(min_length=2, max_length=20)


class JoinGameResponse(BaseModel):
    game_id: str
    team: TeamSlot
    started: bool = False


class RevealLetterRequest(BaseModel):
    team: TeamSlot
    round_index: int
    letter_key: str
    answer: str


class SubmitAnswerRequest(BaseModel):
    team: TeamSlot
    round_index: int
    answer: str
    points: Optional[int] = None  # client-side decayed value, captured on submit


class TeamRequest(BaseModel):
    team: TeamSlot


class AdjustScoreRequest(BaseModel):
    team: TeamSlot
    amount: int
    reason: str = ""


class ActionResponse(BaseModel):
    correct: bool
    score: int
