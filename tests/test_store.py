"""
Tests for the composite BudgetStore.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import InMemoryStore
from budgetbot.src.database.chat_store import ConversationStore
from budgetbot.src.database.store import BudgetStore, Store
from budgetbot.src.database.vector_store import UnitTable


@pytest.fixture
def conversation():
    mock = MagicMock(spec=ConversationStore)
    for name in ("open", "append_turn", "list_turns", "clear_turns", "get_flag", "set_flag", "clear_flags"):
        setattr(mock, name, AsyncMock())
    mock.list_turns.return_value = []
    return mock


@pytest.fixture
def units(tmp_path):
    return UnitTable(db_path=str(tmp_path / "lancedb"), table_name="store_test")


def test_implementations_satisfy_protocol(units, conversation):
    assert isinstance(BudgetStore(units=units, conversation=conversation), Store)
    assert isinstance(InMemoryStore(), Store)


@pytest.mark.asyncio
async def test_lifecycle(units, conversation):
    store = BudgetStore(units=units, conversation=conversation)
    assert not store.ready

    async with store as opened:
        assert opened is store
        assert store.ready
        assert units.is_open
        conversation.open.assert_awaited_once()

    assert not store.ready
    conversation.close.assert_called_once()


@pytest.mark.asyncio
async def test_units_round_trip(units, conversation):
    async with BudgetStore(units=units, conversation=conversation) as store:
        unit_id = await store.put_unit("Account Summary", [1.0, 0.0])
        other = await store.put_unit("October 2025", [0.0, 1.0])

        await store.delete_unit(other)
        listed = await store.list_units()

        assert [u.id for u in listed] == [unit_id]

        await store.clear_units()
        assert await store.list_units() == []


@pytest.mark.asyncio
async def test_turns_and_flags_delegate(units, conversation):
    async with BudgetStore(units=units, conversation=conversation) as store:
        await store.append_turn("user", "hello")
        await store.list_turns(2)
        await store.set_flag("k", "v")
        await store.get_flag("k")
        await store.clear_flags()
        await store.clear_turns()

    conversation.append_turn.assert_awaited_once_with("user", "hello")
    conversation.list_turns.assert_awaited_once_with(2)
    conversation.set_flag.assert_awaited_once_with("k", "v")
    conversation.get_flag.assert_awaited_once_with("k")
    conversation.clear_flags.assert_awaited_once()
    conversation.clear_turns.assert_awaited_once()
