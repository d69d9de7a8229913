"""
Round builder — turns an authored GameDefinition into persisted Rounds.

Letter questions are shuffled and bound to letter slots here, exactly once,
before the result is handed to a transaction as a fixed value. A retried
transaction therefore always writes the same binding.
"""
import logging
import random
from typing import List, Optional

from engine.scoring import assign_letter_questions
from models.game import (
    GameDefinition,
    LetterQuestion,
    Round,
    GAME_CODE_ALPHABET,
    GAME_CODE_LENGTH,
)

logger = logging.getLogger(__name__)


def generate_game_code(length: int = GAME_CODE_LENGTH, rng: Optional[random.Random] = None) -> str:
    """Short join code from [A-Z0-9]. Uniqueness is checked by the store on create."""
    return "".join((rng or random).choices(GAME_CODE_ALPHABET, k=length))


def build_rounds(
    definition: GameDefinition,
    shuffle: bool = True,
    rng: Optional[random.Random] = None,
) -> List[Round]:
    rounds: List[Round] = []
    for index, rd in enumerate(definition.rounds):
        pool = [
            LetterQuestion(question=lq.question, answer=lq.answer)
            for lq in rd.letter_questions
            if lq.question.strip()
        ]
        bound, leftover = assign_letter_questions(rd.main_answer, pool, shuffle=shuffle, rng=rng)
        if leftover:
            logger.info(f"Round {index + 1}: {len(leftover)} letter question(s) left unassigned")
        rounds.append(Round(
            main_question=rd.main_question,
            main_answer=rd.main_answer,
            letter_questions=bound,
            unassigned_letter_questions=leftover,
        ))
    return rounds
