"""
Tests for the in-memory document store.
"""
import pytest

from anise_backend.exceptions import NotFoundError
from anise_backend.store import (
    DELETE_FIELD, SERVER_TIMESTAMP, ArrayUnion, Increment, MemoryDocumentStore, join_path,
)

from conftest import START


def test_join_path():
    assert join_path("daos", "0xAb", "/proposals/", 7) == "daos/0xAb/proposals/7"


class TestWrites:
    """set, update and delete semantics."""

    def test_get_returns_a_copy(self, store):
        store.set("daos/a", {"metadata": {"name": "A"}})
        doc = store.get("daos/a")
        doc["metadata"]["name"] = "changed"
        assert store.get("daos/a")["metadata"]["name"] == "A"

    def test_missing_document(self, store):
        assert store.get("daos/missing") is None
        assert not store.exists("daos/missing")

    def test_paths_must_have_even_segments(self, store):
        with pytest.raises(ValueError):
            store.get("daos")
        with pytest.raises(ValueError):
            store.query("daos/a")

    def test_set_overwrites_unless_merged(self, store):
        store.set("users/u", {"wallet": {"address": "0x1"}, "email": "u@example.com"})
        store.set("users/u", {"wallet": {"label": "main"}}, merge=True)
        assert store.get("users/u") == {"wallet": {"address": "0x1", "label": "main"}, "email": "u@example.com"}
        store.set("users/u", {"email": "new@example.com"})
        assert store.get("users/u") == {"email": "new@example.com"}

    def test_dotted_update_keeps_siblings(self, store):
        store.set("daos/a/proposals/1", {"votes": {"0xAA": {"approve": True}}, "approvals": 1})
        store.update("daos/a/proposals/1", {"votes.0xBB.approve": False, "rejections": Increment()})
        assert store.get("daos/a/proposals/1") == {
            "votes": {"0xAA": {"approve": True}, "0xBB": {"approve": False}},
            "approvals": 1,
            "rejections": 1,
        }

    def test_update_missing_document(self, store):
        with pytest.raises(NotFoundError):
            store.update("daos/a/proposals/9", {"status": "approved"})

    def test_transforms(self, clock):
        store = MemoryDocumentStore(clock=clock)
        store.set("daos/a", {"memberCount": 2, "tags": ["x"], "createdAt": SERVER_TIMESTAMP, "note": "tmp"})
        store.update("daos/a", {
            "memberCount": Increment(-1),
            "tags": ArrayUnion(["x", "y"]),
            "note": DELETE_FIELD,
        })
        doc = store.get("daos/a")
        assert doc["memberCount"] == 1
        assert doc["tags"] == ["x", "y"]
        assert "note" not in doc
        assert doc["createdAt"] > START

    def test_increment_on_missing_field(self, store):
        store.set("daos/a", {})
        store.update("daos/a", {"stats.count": Increment(5)})
        assert store.get("daos/a") == {"stats": {"count": 5}}

    def test_delete(self, store):
        store.set("daos/a", {"x": 1})
        store.delete("daos/a")
        store.delete("daos/a")
        assert store.get("daos/a") is None


class TestBatch:
    """Batches are applied all-or-nothing."""

    def test_commit(self, store):
        store.set("daos/a", {"memberCount": 1})
        batch = store.batch()
        batch.set("daos/a/members/0x1", {"role": "Member"}).update("daos/a", {"memberCount": Increment()})
        assert len(batch) == 2
        batch.commit()
        assert store.get("daos/a")["memberCount"] == 2
        assert store.get("daos/a/members/0x1") == {"role": "Member"}

    def test_failed_update_writes_nothing(self, store):
        batch = store.batch()
        batch.set("daos/a/members/0x1", {"role": "Member"})
        batch.update("daos/a", {"memberCount": Increment()})
        with pytest.raises(NotFoundError):
            batch.commit()
        assert store.get("daos/a/members/0x1") is None


class TestQueries:
    """Filtering, ordering and cursors."""

    @pytest.fixture
    def daos(self, store):
        for doc_id, name, members, tags in (
            ("a", "Bees", 3, ["nature"]),
            ("b", "Chess", 8, ["games"]),
            ("c", "Owls", 5, ["nature", "night"]),
            ("d", "Unsorted", None, []),
        ):
            data = {"metadata": {"name": name}, "tags": tags}
            if members is not None:
                data["memberCount"] = members
            store.set(join_path("daos", doc_id), data)
        store.set("daos/a/members/0x1", {"role": "Admin"})
        return store

    def test_direct_children_only(self, daos):
        assert [d.id for d in daos.query("daos")] == ["a", "b", "c", "d"]
        assert daos.list_ids("daos/a/members") == ["0x1"]

    @pytest.mark.parametrize("where, expected", [
        ([("memberCount", ">", 3)], ["b", "c"]),
        ([("memberCount", "<=", 5)], ["a", "c"]),
        ([("memberCount", "!=", 3)], ["b", "c"]),
        ([("tags", "array-contains", "nature")], ["a", "c"]),
        ([("metadata.name", "in", ["Owls", "Bees"])], ["a", "c"]),
        ([("metadata.name", "==", "Chess")], ["b"]),
        ([("tags", "array-contains", "nature"), ("memberCount", ">=", 4)], ["c"]),
    ])
    def test_filters(self, daos, where, expected):
        assert [d.id for d in daos.query("daos", where=where)] == expected
        assert daos.count("daos", where=where) == len(expected)

    def test_unsupported_operator(self, daos):
        with pytest.raises(ValueError):
            daos.query("daos", where=[("memberCount", "like", 3)])

    def test_order_puts_missing_values_last(self, daos):
        ordered = daos.query("daos", order_by=[("memberCount", "desc")])
        assert [d.id for d in ordered] == ["b", "c", "a", "d"]

    def test_offset_limit_and_cursor(self, daos):
        order = [("memberCount", "asc")]
        assert [d.id for d in daos.query("daos", order_by=order, offset=1, limit=2)] == ["c", "b"]
        assert [d.id for d in daos.query("daos", order_by=order, start_after="c")] == ["b", "d"]
        assert [d.id for d in daos.query("daos", order_by=order, start_after="zzz", limit=1)] == ["a"]

    def test_to_dict(self, daos):
        doc = daos.query("daos", where=[("metadata.name", "==", "Bees")])[0]
        assert doc.to_dict("daoAddress")["daoAddress"] == "a"
