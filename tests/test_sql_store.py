"""Tests for the SQL store paths that do not need a PostGIS server."""

import pytest
from geoalchemy2 import WKBElement
from sqlalchemy import create_engine

from powerline_survey.errors import StoreError
from powerline_survey.sql_store import SqlStore, _ewkb_hex


@pytest.fixture
def sql_store():
    return SqlStore(create_engine("sqlite://"))


class TestSqlStore:
    def test_malformed_line_id_is_not_found(self, sql_store):
        assert sql_store.get_line("not-a-uuid") is None
        assert sql_store.list_structures("not-a-uuid") == []

    def test_database_errors_become_store_errors(self, sql_store):
        with pytest.raises(StoreError):
            with sql_store.transaction() as session:
                session.find_line_by_numero("L-1")

    def test_geometry_passed_as_hex_ewkb(self):
        element = WKBElement("0101000020e610000000000000000000000000000000000000", extended=True)
        assert _ewkb_hex(element) == "0101000020e610000000000000000000000000000000000000"
        assert _ewkb_hex("POINT(0 0)") == "POINT(0 0)"
