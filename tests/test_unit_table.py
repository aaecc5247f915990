"""
Tests for the LanceDB-backed UnitTable, run against a temporary directory.
"""
import pytest

from budgetbot.src.core.errors import StoreFailure
from budgetbot.src.database.vector_store import UnitTable


@pytest.fixture
def table(tmp_path):
    t = UnitTable(db_path=str(tmp_path / "lancedb"), table_name="units_test")
    t.open()
    return t


def test_open_creates_empty_table(table):
    assert table.is_open
    assert table.count() == 0
    assert table.scan() == []


def test_put_and_scan(table):
    first = table.put("October 2025 Transaction History", [0.1, 0.2, 0.3])
    second = table.put("Account Summary", [0.3, 0.2, 0.1])

    units = table.scan()

    assert [u.id for u in units] == [first, second]
    assert units[0].text == "October 2025 Transaction History"
    assert units[0].vector == pytest.approx((0.1, 0.2, 0.3))
    assert units[0].seq < units[1].seq
    assert table.count() == 2


def test_ids_are_unique(table):
    ids = {table.put("same text", [1.0]) for _ in range(5)}

    assert len(ids) == 5


def test_delete(table):
    keep = table.put("keep", [1.0, 0.0])
    gone = table.put("it's gone", [0.0, 1.0])

    table.delete(gone)

    assert [u.id for u in table.scan()] == [keep]


def test_clear_keeps_table(table):
    table.put("a", [1.0])
    table.put("b", [2.0])

    table.clear()

    assert table.is_open
    assert table.count() == 0


def test_sequence_survives_reopen(tmp_path):
    path = str(tmp_path / "lancedb")
    first = UnitTable(db_path=path, table_name="units_test")
    first.open()
    first.put("a", [1.0])
    first.put("b", [1.0])

    reopened = UnitTable(db_path=path, table_name="units_test")
    reopened.open()
    reopened.put("c", [1.0])

    assert [u.text for u in reopened.scan()] == ["a", "b", "c"]
    assert reopened.scan()[-1].seq == 2


def test_open_uses_no_deprecated_listing(tmp_path, recwarn):
    path = str(tmp_path / "lancedb")
    UnitTable(db_path=path, table_name="units_test").open()
    UnitTable(db_path=path, table_name="units_test").open()

    assert not [w for w in recwarn if "table_names" in str(w.message)]


def test_requires_open(tmp_path):
    table = UnitTable(db_path=str(tmp_path / "lancedb"))

    with pytest.raises(StoreFailure):
        table.put("text", [1.0])
    with pytest.raises(StoreFailure):
        table.scan()
    assert table.count() == 0


def test_drop_table(table):
    table.put("a", [1.0])

    table.drop_table()

    assert not table.is_open
    table.open()
    assert table.count() == 0
