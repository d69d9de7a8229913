import asyncio

import pytest

from engine.team_assigner import TeamAssigner, assign_team
from models.errors import GameFullError, GameNotFoundError, GameNotJoinableError
from models.game import GameStatus, Team, TeamSlot


def test_first_join_takes_team1(lobby_game):
    updates, result = assign_team(lobby_game, 'ABCD', '  Owls ')
    assert result.team == TeamSlot.TEAM1
    assert not result.started
    assert updates['team1']['name'] == 'Owls'
    assert 'status' not in updates


def test_second_join_starts_game(make_game):
    game = make_game(team1=Team(name='Owls'))
    updates, result = assign_team(game, 'ABCD', 'Foxes')
    assert result.team == TeamSlot.TEAM2
    assert result.started
    assert updates['status'] == GameStatus.IN_PROGRESS.value


def test_join_missing_game():
    with pytest.raises(GameNotFoundError):
        assign_team(None, 'ZZZZ', 'Owls')


def test_join_full_lobby(make_game):
    game = make_game(team1=Team(name='Owls'), team2=Team(name='Foxes'))
    with pytest.raises(GameFullError):
        assign_team(game, 'ABCD', 'Bears')


def test_concurrent_joins_get_different_slots(store, lobby_game):
    async def scenario():
        await store.create_game(lobby_game)
        assigner = TeamAssigner(store)
        return await asyncio.gather(
            assigner.join_game('abcd', 'Owls'),
            assigner.join_game('ABCD', 'Foxes'),
        )

    first, second = asyncio.run(scenario())
    assert {first.team, second.team} == {TeamSlot.TEAM1, TeamSlot.TEAM2}
    assert [first.started, second.started].count(True) == 1
    # the losing joiner re-ran its transaction
    assert store.transaction_attempts >= 3

    game = asyncio.run(store.get_game('ABCD'))
    assert game.status == GameStatus.IN_PROGRESS
    assert {game.team1.name, game.team2.name} == {'Owls', 'Foxes'}


def test_rejoin_returns_same_slot_without_changes(store, make_game):
    game = make_game(
        status=GameStatus.IN_PROGRESS,
        team1=Team(name='Owls', score=120, current_round_index=1),
        team2=Team(name='Foxes'),
    )

    async def scenario():
        await store.create_game(game)
        result = await TeamAssigner(store).join_game('ABCD', ' owls ')
        return result, await store.get_game('ABCD')

    result, stored = asyncio.run(scenario())
    assert result.team == TeamSlot.TEAM1
    assert result.rejoined
    assert stored.team1.score == 120
    assert stored.team1.current_round_index == 1
    assert stored.team2.name == 'Foxes'


def test_join_after_start_is_rejected(store, live_game):
    async def scenario():
        await store.create_game(live_game)
        await TeamAssigner(store).join_game('ABCD', 'Bears')

    with pytest.raises(GameNotJoinableError):
        asyncio.run(scenario())


def test_join_unknown_code(store):
    with pytest.raises(GameNotFoundError):
        asyncio.run(TeamAssigner(store).join_game('ZZZZ', 'Owls'))
