import asyncio
from datetime import datetime, timezone

import pytest

from models.errors import GameNotFoundError, TransactionConflictError
from services.memory_store import MemoryStore
from utils.field_paths import apply_updates


def test_apply_updates_touches_only_addressed_fields():
    data = {'team1': {'score': 5, 'name': 'Owls'}, 'rounds': {'0': {'current_points': 1000}}}
    apply_updates(data, {'team1.score': 15, 'rounds.0.winner': 'team1', 'team2.revealed_letters.1': ['A_0']})
    assert data['team1'] == {'score': 15, 'name': 'Owls'}
    assert data['rounds']['0'] == {'current_points': 1000, 'winner': 'team1'}
    assert data['team2'] == {'revealed_letters': {'1': ['A_0']}}


def test_apply_updates_rejects_empty_segments():
    with pytest.raises(ValueError):
        apply_updates({}, {'team1..score': 1})


def test_create_is_create_if_absent(store, lobby_game):
    async def scenario():
        return await store.create_game(lobby_game), await store.create_game(lobby_game)

    assert asyncio.run(scenario()) == (True, False)


def test_update_missing_game(store):
    with pytest.raises(GameNotFoundError):
        asyncio.run(store.update_game('ZZZZ', {'title': 'x'}))


def test_list_games_newest_first(store, make_game):
    older = make_game(id='OLD1', created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    newer = make_game(id='NEW1', created_at=datetime(2026, 2, 1, tzinfo=timezone.utc))

    async def scenario():
        await store.create_game(older)
        await store.create_game(newer)
        return await store.list_games()

    assert [g.id for g in asyncio.run(scenario())] == ['NEW1', 'OLD1']


def test_subscribe_pushes_current_changes_and_delete(store, lobby_game):
    seen = []

    async def scenario():
        await store.create_game(lobby_game)
        unsubscribe = store.subscribe('ABCD', seen.append)
        await asyncio.sleep(0)
        await store.update_game('ABCD', {'title': 'Renamed'})
        await asyncio.sleep(0)
        await store.delete_game('ABCD')
        await asyncio.sleep(0)
        unsubscribe()
        await store.create_game(lobby_game)
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert [g.title if g else None for g in seen] == ['Capitals and more', 'Renamed', None]


def test_transaction_body_sees_committed_state(store, lobby_game):
    async def scenario():
        await store.create_game(lobby_game)
        result = await store.run_transaction('ABCD', lambda g: ({'title': g.title + '!'}, g.title))
        return result, await store.get_game('ABCD')

    result, game = asyncio.run(scenario())
    assert result == 'Capitals and more'
    assert game.title == 'Capitals and more!'


def test_transaction_gives_up_under_constant_contention(lobby_game):
    store = MemoryStore(max_attempts=3)

    async def writer():
        for i in range(10):
            await store.update_game('ABCD', {'title': f'title {i}'})
            await asyncio.sleep(0)

    async def scenario():
        await store.create_game(lobby_game)
        await asyncio.gather(
            store.run_transaction('ABCD', lambda g: ({'title': 'mine'}, None)),
            writer(),
        )

    with pytest.raises(TransactionConflictError):
        asyncio.run(scenario())
    assert store.transaction_attempts == 3
