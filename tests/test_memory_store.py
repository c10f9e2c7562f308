"""Tests for the in-memory store's transactions and geometry primitives."""

import threading

import pytest

from powerline_survey.errors import StoreError
from powerline_survey.importer import import_topology
from powerline_survey.models import LineTopology


class TestTransactions:
    def test_commit(self, store):
        with store.transaction() as session:
            line = session.create_line("L-1", "L-1")
            session.insert_segment(line.id, 0, [(0.0, 0.0), (1.0, 0.0)])
        assert len(store.list_segments(line.id)) == 1

    def test_rollback_restores_state(self, store):
        line = store.create_line("L-1")
        store.insert_segment(line.id, 0, [(0.0, 0.0), (1.0, 0.0)])

        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.delete_line_children(line.id)
                session.create_line("L-2")
                raise RuntimeError("crash mid-import")

        assert len(store.list_segments(line.id)) == 1
        assert store.find_line_by_numero("L-2") is None

    def test_rollback_keeps_work_committed_meanwhile(self, store):
        topology = LineTopology(
            numero="L-B",
            segments=[[(0.0, 0.0), (0.01, 0.0)]],
            structures=[("E-1", (0.005, 0.0))],
        )

        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.create_line("L-A")
                result = import_topology([topology], store)
                raise RuntimeError("crash mid-import")

        assert result.lineas_finalized == 1
        assert store.find_line_by_numero("L-A") is None
        line = store.find_line_by_numero("L-B")
        assert line is not None
        assert line.km_fin > 0
        assert len(store.list_segments(line.id)) == 1
        assert store.list_structures(line.id)[0].km > 0

    def test_transactions_from_other_threads_wait(self, store):
        def create_other():
            with store.transaction() as session:
                session.create_line("L-B")

        worker = threading.Thread(target=create_other)
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.create_line("L-A")
                worker.start()
                worker.join(timeout=0.2)
                assert worker.is_alive()
                assert store.find_line_by_numero("L-B") is None
                raise RuntimeError("crash mid-import")
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert store.find_line_by_numero("L-A") is None
        assert store.find_line_by_numero("L-B") is not None

    def test_rollback_undoes_finalize(self, store):
        line = store.create_line("L-1")
        store.insert_segment(line.id, 0, [(0.0, 0.0), (0.0, 1.0)])
        store.insert_structure(line.id, "E-1", 0.0, (0.0, 0.5))

        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.finalize_import_for_line(line.id)
                raise RuntimeError("crash mid-import")

        assert store.get_line(line.id).km_fin is None
        assert [s.km for s in store.list_structures(line.id)] == [0.0]

    def test_duplicate_numero(self, store):
        store.create_line("L-1")
        with pytest.raises(StoreError):
            store.create_line("L-1")

    def test_insert_for_unknown_line(self, store):
        with pytest.raises(StoreError):
            store.insert_structure("nope", "E-1", 0.0, (0.0, 0.0))

    def test_structures_ordered_by_km(self, store):
        line = store.create_line("L-1")
        for name, km in [("c", 15.0), ("a", 5.0), ("b", 10.0)]:
            store.insert_structure(line.id, name, km, (0.0, 0.0))
        assert [s.numero_estructura for s in store.list_structures(line.id)] == ["a", "b", "c"]


class TestFinalize:
    def test_single_segment_line(self, store):
        line = store.create_line("L-1")
        store.insert_segment(line.id, 0, [(0.0, 0.0), (0.0, 1.0)])
        store.insert_structure(line.id, "E-1", 0.0, (0.0, 0.5))
        store.finalize_import_for_line(line.id)

        line = store.get_line(line.id)
        assert line.geom["type"] == "LineString"
        assert line.km_fin == pytest.approx(110.57, abs=0.05)
        (structure,) = store.list_structures(line.id)
        assert structure.km == pytest.approx(line.km_fin / 2, rel=1e-6)

    def test_without_segments(self, store):
        line = store.create_line("L-1")
        with pytest.raises(StoreError):
            store.finalize_import_for_line(line.id)


class TestPrimitives:
    POINT_A = {"type": "Point", "coordinates": [0.0, 0.0]}
    POINT_B = {"type": "Point", "coordinates": [0.0, 2.0]}

    def test_interpolate_point(self, store):
        coords = store.interpolate_point(self.POINT_A, self.POINT_B, 10.0, 20.0, 15.0)
        assert coords["lon"] == pytest.approx(0.0, abs=1e-9)
        assert coords["lat"] == pytest.approx(1.0, abs=1e-3)

    def test_interpolate_point_at_endpoints(self, store):
        coords = store.interpolate_point(self.POINT_A, self.POINT_B, 10.0, 20.0, 20.0)
        assert coords["lat"] == pytest.approx(2.0, abs=1e-9)

    def test_interpolate_point_rejects_equal_km(self, store):
        with pytest.raises(StoreError):
            store.interpolate_point(self.POINT_A, self.POINT_B, 10.0, 10.0, 10.0)

    def test_get_point_coords(self, store):
        assert store.get_point_coords({"type": "Point", "coordinates": [-58.4, -34.6]}) == {"lat": -34.6, "lon": -58.4}

    def test_get_point_coords_rejects_lines(self, store):
        with pytest.raises(StoreError):
            store.get_point_coords({"type": "LineString", "coordinates": [[0, 0], [1, 1]]})

    def test_interpolate_line_point(self, store):
        line = {"type": "LineString", "coordinates": [[0.0, 0.0], [10.0, 0.0]]}
        assert store.interpolate_line_point(line, 0.25) == {"lat": 0.0, "lon": 2.5}

    def test_interpolate_multiline_point(self, store):
        line = {"type": "MultiLineString", "coordinates": [[[0.0, 0.0], [1.0, 0.0]], [[1.0, 0.0], [1.0, 1.0]]]}
        coords = store.interpolate_line_point(line, 0.75)
        assert coords == pytest.approx({"lat": 0.5, "lon": 1.0})

    def test_invalid_geometry(self, store):
        with pytest.raises(StoreError):
            store.interpolate_line_point("LINESTRING(0 0, 1 1)", 0.5)
