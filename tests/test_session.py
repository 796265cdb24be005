"""
Tests for database engine configuration.
"""

import os
from unittest.mock import patch

from src.database.session import create_db_engine, get_database_url, get_statement_timeout_ms


class TestStatementTimeout:

    def test_follows_fetch_deadline(self):
        with patch.dict(os.environ, {"CACHE_FETCH_TIMEOUT": "2.5"}, clear=True):
            assert get_statement_timeout_ms() == 2500

    def test_explicit_override(self):
        with patch.dict(os.environ, {"CACHE_FETCH_TIMEOUT": "2.5", "DB_STATEMENT_TIMEOUT_MS": "800"}, clear=True):
            assert get_statement_timeout_ms() == 800

    def test_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_statement_timeout_ms() == 10000

    def test_postgres_engine_sets_statement_timeout(self):
        with patch.dict(os.environ, {"CACHE_FETCH_TIMEOUT": "3"}, clear=True), \
                patch("src.database.session.create_engine") as create_engine:
            create_db_engine("postgresql://shop@localhost/catalog")

        kwargs = create_engine.call_args.kwargs
        assert kwargs["connect_args"] == {"options": "-c statement_timeout=3000"}
        assert kwargs["pool_pre_ping"] is True


class TestDatabaseUrl:

    def test_postgres_scheme_rewritten(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgres://shop@db/catalog"}, clear=True):
            assert get_database_url() == "postgresql://shop@db/catalog"

    def test_sqlite_fallback(self):
        with patch.dict(os.environ, {"SQLITE_PATH": "dev.db"}, clear=True):
            assert get_database_url() == "sqlite:///dev.db"
