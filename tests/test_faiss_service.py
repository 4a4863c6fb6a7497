"""Tests for the per-user FAISS index (small vectors, real faiss)."""

import pytest

from app.services.faiss_service import FAISSService


def _index(tmp_path):
    return FAISSService(str(tmp_path), dim=4)


def _rows(service, user_id):
    index, mapping = service._load(user_id)
    assert index.ntotal == len(mapping)
    return mapping, [list(index.reconstruct(i)) for i in range(index.ntotal)]


def test_unknown_user_has_empty_index(tmp_path):
    assert _rows(_index(tmp_path), "u1") == ([], [])


def test_add_batch_normalises_and_keeps_row_order(tmp_path):
    service = _index(tmp_path)
    service.add_batch("u1", ["profile", "profile", "saved-insight"], [[2, 0, 0, 0], [3, 4, 0, 0], [0, 1, 0, 0]])

    mapping, vectors = _rows(service, "u1")

    assert mapping == ["profile", "profile", "saved-insight"]
    assert vectors[0] == pytest.approx([1, 0, 0, 0])
    assert vectors[1] == pytest.approx([0.6, 0.8, 0, 0])


def test_add_batch_with_nothing_is_a_noop(tmp_path):
    service = _index(tmp_path)
    service.add_batch("u1", [], [])
    assert not (tmp_path / "faiss_indexes" / "u1.index").exists()


def test_indexes_are_per_user(tmp_path):
    service = _index(tmp_path)
    service.add_batch("u1", ["a"], [[1, 0, 0, 0]])
    assert _rows(service, "u2") == ([], [])


def test_remove_items_rebuilds(tmp_path):
    service = _index(tmp_path)
    service.add_batch("u1", ["a", "a", "b"], [[1, 0, 0, 0], [0, 0, 1, 0], [0, 1, 0, 0]])

    assert service.remove_items("u1", {"a"}) == 2
    mapping, vectors = _rows(service, "u1")
    assert mapping == ["b"]
    assert vectors[0] == pytest.approx([0, 1, 0, 0])

    assert service.remove_items("u1", {"missing"}) == 0
    assert service.remove_items("u1", {"b"}) == 1
    assert _rows(service, "u1") == ([], [])


def test_index_persists_across_instances(tmp_path):
    _index(tmp_path).add_batch("u1", ["a"], [[0, 0, 0, 1]])
    mapping, _ = _rows(_index(tmp_path), "u1")
    assert mapping == ["a"]
