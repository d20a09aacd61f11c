"""
Shared fixtures for the unit tests.
"""
import pytest
from unittest.mock import Mock

from voyageur.supabase_sync.supabase_client import SupabaseClient

CHAIN_METHODS = (
    "select", "insert", "update", "upsert", "delete", "eq", "neq", "gte", "lte",
    "gt", "lt", "ilike", "in_", "or_", "contains", "order", "limit", "range", "is_",
)


def mock_table(mock_client, rows=None):
    """Make ``mock_client.table(...)`` return a chainable query whose execute() yields ``rows``."""
    table = Mock()
    mock_client.table.return_value = table
    for name in CHAIN_METHODS:
        getattr(table, name).return_value = table
    table.not_ = table

    res = Mock()
    res.data = rows if rows is not None else []
    res.count = len(res.data)
    table.execute.return_value = res
    return table


def results(*row_sets):
    """Execute side effects returning each row set in turn."""
    out = []
    for rows in row_sets:
        res = Mock()
        res.data = rows
        res.count = len(rows or [])
        out.append(res)
    return out


@pytest.fixture
def supabase_client():
    client = SupabaseClient()
    client.initialized = True
    client.client = Mock()
    return client
