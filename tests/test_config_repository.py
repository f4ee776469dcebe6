from datetime import datetime
from unittest.mock import MagicMock

import psycopg2
import pytest

from dynconfig.domain.config import DeclaredType
from dynconfig.domain.errors import StoreUnavailableError
from dynconfig.repository.config_repository import PostgresConfigStore
from dynconfig.repository.store import ConfigStore


def row(name, value, type_="string", app="SERVICE-A", active=True, id_=1):
    return {
        "id": id_,
        "name": name,
        "type": type_,
        "value": value,
        "is_active": active,
        "application_name": app,
        "created_at": datetime(2024, 1, 1),
        "updated_at": datetime(2024, 1, id_),
    }


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def conn(cursor):
    conn = MagicMock()
    conn.closed = 0
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def postgres(conn):
    client = MagicMock()
    client.get_connection.return_value = conn
    return client


@pytest.fixture
def store(postgres):
    return PostgresConfigStore(postgres)


def test_implements_store_protocol(store):
    assert isinstance(store, ConfigStore)


def test_fetch_all_maps_rows(store, cursor, postgres, conn):
    cursor.fetchall.return_value = [
        row("SiteName", "soty.io", id_=1),
        row("MaxItemCount", "50", "int", id_=2),
    ]

    items = store.fetch_all("SERVICE-A")

    assert [item.key for item in items] == ["SiteName", "MaxItemCount"]
    assert items[1].declared_type is DeclaredType.INTEGER
    assert items[1].id == "2"
    sql, params = cursor.execute.call_args.args
    assert "application_name = %s" in sql
    assert "is_active = TRUE" in sql
    assert "ORDER BY updated_at, id" in sql
    assert params == ("SERVICE-A",)
    postgres.put_connection.assert_called_once_with(conn, close=False)


def test_fetch_all_skips_unknown_types(store, cursor):
    cursor.fetchall.return_value = [
        row("Good", "1", "bool", id_=1),
        row("Weird", "x", "blob", id_=2),
    ]

    items = store.fetch_all("SERVICE-A")

    assert [item.key for item in items] == ["Good"]


def test_fetch_one(store, cursor):
    cursor.fetchall.return_value = [row("ApiKey", "abc123xyz")]

    item = store.fetch_one("ApiKey", "SERVICE-A")

    assert item is not None
    assert item.raw_value == "abc123xyz"
    sql, params = cursor.execute.call_args.args
    assert "LIMIT 1" in sql
    assert params == ("ApiKey", "SERVICE-A")


def test_fetch_one_not_found(store, cursor):
    cursor.fetchall.return_value = []

    assert store.fetch_one("Missing", "SERVICE-A") is None


def test_query_error_raises_store_unavailable(store, cursor, conn, postgres):
    cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
    conn.closed = 2

    with pytest.raises(StoreUnavailableError):
        store.fetch_all("SERVICE-A")

    conn.rollback.assert_not_called()
    postgres.put_connection.assert_called_once_with(conn, close=True)


def test_pool_error_raises_store_unavailable(store, postgres):
    postgres.get_connection.side_effect = ConnectionError("refused")

    with pytest.raises(StoreUnavailableError):
        store.fetch_one("ApiKey", "SERVICE-A")


def test_probe_connectivity(store, cursor, postgres):
    cursor.fetchall.return_value = [{"ok": 1}]
    assert store.probe_connectivity() is True

    postgres.get_connection.side_effect = ConnectionError("refused")
    assert store.probe_connectivity() is False


def test_ensure_schema_creates_table_and_index(store, cursor, conn):
    assert store.ensure_schema() is True

    statements = [call.args[0] for call in cursor.execute.call_args_list]
    assert "CREATE TABLE IF NOT EXISTS configurations" in statements[0]
    assert "CREATE INDEX IF NOT EXISTS" in statements[1]
    assert conn.commit.call_count == 2


def test_ensure_schema_index_failure_is_not_fatal(store, cursor, conn):
    cursor.execute.side_effect = [None, psycopg2.ProgrammingError("permission denied")]

    assert store.ensure_schema() is True
    conn.rollback.assert_called_once()


def test_ensure_schema_without_database(store, postgres):
    postgres.get_connection.side_effect = ConnectionError("refused")

    assert store.ensure_schema() is False


def test_close_closes_pool(store, postgres):
    store.close()

    postgres.close.assert_called_once()
