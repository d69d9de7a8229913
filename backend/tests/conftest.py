import os
import sys
import pytest

# Ensure the backend root (containing config.py and the packages) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

os.environ.setdefault('STORE_BACKEND', 'memory')

from engine.round_builder import build_rounds
from models.game import Game, GameDefinition, GameStatus, Team
from services.memory_store import MemoryStore
from utils.field_paths import apply_updates

ADMIN_UID = 'admin-uid'

# Letter questions are listed in slot order so unshuffled binding is predictable:
# PARIS -> P_0 PLUTO, A_0 AMAZON, R_0 ROME, I_0 INDIA, S_0 SATURN (+1 spare)
# ALLY  -> A_0 ATLAS, L_0 LONDON, L_1 LISBON, Y_0 YEN
DEFINITION = {
    'title': 'Capitals and more',
    'rounds': [
        {
            'mainQuestion': 'Which city hosts the Louvre?',
            'mainAnswer': 'Paris',
            'letterQuestions': [
                {'letter': 'P', 'question': 'Dwarf planet demoted in 2006', 'answer': 'Pluto'},
                {'letter': 'A', 'question': 'Longest river in South America', 'answer': 'Amazon'},
                {'letter': 'R', 'question': 'Capital of Italy', 'answer': 'Rome'},
                {'letter': 'I', 'question': 'Most populous country', 'answer': 'India'},
                {'letter': 'S', 'question': 'Planet with the famous rings', 'answer': 'Saturn'},
                {'letter': 'P', 'question': 'Largest ocean', 'answer': 'Pacific'},
            ],
        },
        {
            'mainQuestion': 'A friend in a war, in one word?',
            'mainAnswer': 'ally',
            'letterQuestions': [
                {'letter': 'A', 'question': 'Titan holding up the sky', 'answer': 'Atlas'},
                {'letter': 'L', 'question': 'Capital of England', 'answer': 'London'},
                {'letter': 'L', 'question': 'Capital of Portugal', 'answer': 'Lisbon'},
                {'letter': 'Y', 'question': 'Currency of Japan', 'answer': 'Yen'},
            ],
        },
    ],
}


def apply(game: Game, updates) -> Game:
    """The game as the store would hold it after committing `updates`."""
    return Game(**apply_updates(game.to_document(), updates))


@pytest.fixture()
def definition():
    return GameDefinition(**DEFINITION)


@pytest.fixture()
def make_game(definition):
    def _make(**fields) -> Game:
        data = {
            'id': 'ABCD',
            'creator_id': ADMIN_UID,
            'title': definition.title,
            'rounds': build_rounds(definition, shuffle=False),
        }
        data.update(fields)
        return Game(**data)
    return _make


@pytest.fixture()
def lobby_game(make_game):
    return make_game()


@pytest.fixture()
def live_game(make_game):
    return make_game(
        status=GameStatus.IN_PROGRESS,
        team1=Team(name='Owls'),
        team2=Team(name='Foxes'),
    )


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def client(store):
    from fastapi.testclient import TestClient
    from main import app
    from services.firestore_service import get_game_store

    app.dependency_overrides[get_game_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
