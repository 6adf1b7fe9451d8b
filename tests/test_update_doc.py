"""
Tests for update_doc: merge, no-diff detection, renames and their failure modes.
"""

import logging

import pytest

from conftest import make_datum
from daylog.combine import ABSENT
from daylog.document_control import add_doc, add_id_and_metadata, update_doc
from daylog.errors import (
    DocExistsError,
    NoDocToUpdateError,
    StoreConflictError,
    UpdateDocError,
)

OCCUR = "2026-03-02T08:15:00.000Z"
PUSHUPS_ID = f"pushups:{OCCUR}"


def _payload(data, **meta):
    return {"data": data, "meta": meta}


@pytest.fixture
def pushups(store):
    """A stored datum at pushups:<OCCUR>."""
    return add_doc(store, add_id_and_metadata({"field": "pushups", "reps": 5}, occur_time=OCCUR))


class TestMerge:

    def test_update_in_place(self, flaky_store, pushups, output):
        doc = update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 8}), output=output)
        assert doc["_id"] == PUSHUPS_ID
        assert doc["data"] == {"field": "pushups", "reps": 8}
        assert doc["_rev"] != pushups["_rev"]
        assert len(flaky_store.put_calls) == 1
        assert flaky_store.remove_calls == []
        assert output.actions == ["UPDATE"]

    def test_meta_preserved(self, store, pushups):
        doc = update_doc(store, PUSHUPS_ID, _payload({"reps": 8}))
        for key in ("humanId", "createTime", "occurTime", "utcOffset", "fieldStructure"):
            assert doc["meta"][key] == pushups["meta"][key]
        assert doc["meta"]["modifyTime"] > pushups["meta"]["modifyTime"]

    def test_absent_removes_key(self, store, pushups):
        doc = update_doc(store, PUSHUPS_ID, _payload({"reps": ABSENT}))
        assert doc["data"] == {"field": "pushups"}

    def test_strategy_passed_through(self, store, pushups):
        doc = update_doc(store, PUSHUPS_ID, _payload({"sets": [1, 2]}), "append")
        doc = update_doc(store, PUSHUPS_ID, _payload({"sets": [3]}), "append")
        assert doc["data"]["sets"] == [1, 2, 3]

    def test_payload_id_in_data_ignored(self, store, pushups):
        doc = update_doc(store, PUSHUPS_ID, _payload({"_id": "elsewhere", "reps": 6}))
        assert doc["_id"] == PUSHUPS_ID
        assert "_id" not in doc["data"]

    def test_unknown_strategy(self, flaky_store, pushups):
        with pytest.raises(UpdateDocError):
            update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 6}), "sideways")
        assert flaky_store.write_count == 0


class TestNoDiff:

    def test_same_data_writes_nothing(self, flaky_store, pushups, output):
        doc = update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 5}), output=output)
        assert flaky_store.write_count == 0
        assert doc["_rev"] == pushups["_rev"]
        assert output.actions == ["NODIFF"]

    def test_repeat_update_is_idempotent(self, flaky_store, pushups):
        first = update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 9}))
        writes = flaky_store.write_count
        second = update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 9}))
        assert flaky_store.write_count == writes
        assert second["_rev"] == first["_rev"]

    def test_use_old(self, flaky_store, pushups):
        update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 100}), "useOld")
        assert flaky_store.write_count == 0

    def test_prefer_old_field_change_is_no_diff(self, flaky_store, pushups):
        doc = update_doc(flaky_store, PUSHUPS_ID, _payload({"field": "situps"}), "preferOld")
        assert flaky_store.write_count == 0
        assert doc["meta"]["fieldStructure"] == "pushups"

    def test_same_occur_time_is_no_diff(self, flaky_store, pushups):
        update_doc(flaky_store, PUSHUPS_ID, _payload({}, occurTime=OCCUR, utcOffset=0))
        assert flaky_store.write_count == 0

    def test_use_old_ignores_time_change(self, flaky_store, pushups, output):
        payload = _payload({"reps": 9}, occurTime="2026-04-01T00:00:00.000Z")
        doc = update_doc(flaky_store, PUSHUPS_ID, payload, "useOld", output=output)
        assert doc == pushups
        assert flaky_store.write_count == 0
        assert output.actions == ["NODIFF"]

    def test_use_old_on_data_only(self, flaky_store):
        flaky_store.put({"_id": "settings", "theme": "dark"})
        flaky_store.put_calls.clear()
        update_doc(flaky_store, "settings", {"_id": "elsewhere"}, "useOld")
        assert flaky_store.write_count == 0
        assert flaky_store.exists("settings")


class TestRename:

    def test_field_change_renames(self, flaky_store, pushups, output):
        doc = update_doc(flaky_store, PUSHUPS_ID, _payload({"field": "situps"}), output=output)
        new_id = f"situps:{OCCUR}"
        assert doc["_id"] == new_id
        assert doc["meta"]["fieldStructure"] == "situps"
        assert doc["meta"]["humanId"] == pushups["meta"]["humanId"]
        assert not flaky_store.exists(PUSHUPS_ID)
        assert flaky_store.remove_calls == [(PUSHUPS_ID, pushups["_rev"])]
        assert output.actions == ["RENAME", "UPDATE"]

    def test_new_doc_written_before_old_removed(self, flaky_store, pushups):
        update_doc(flaky_store, PUSHUPS_ID, _payload({"field": "situps"}))
        assert [d["_id"] for d in flaky_store.put_calls] == [f"situps:{OCCUR}"]
        assert "_rev" not in flaky_store.put_calls[0]

    def test_occur_time_change_renames(self, store, pushups):
        later = "2026-03-03T09:00:00.000Z"
        doc = update_doc(store, PUSHUPS_ID, _payload({}, occurTime=later, utcOffset=-5))
        assert doc["_id"] == f"pushups:{later}"
        assert doc["meta"]["occurTime"] == later
        assert doc["meta"]["utcOffset"] == -5
        assert not store.exists(PUSHUPS_ID)

    def test_removing_field_renames(self, store, pushups):
        doc = update_doc(store, PUSHUPS_ID, _payload({"field": ABSENT}))
        assert doc["_id"] == OCCUR
        assert "fieldStructure" not in doc["meta"]

    def test_composite_field_structure(self, store):
        payload = make_datum(
            {"project": "house", "task": "paint"}, fieldStructure="%project%_%task%",
        )
        add_doc(store, payload)
        doc = update_doc(store, f"house_paint:{OCCUR}", _payload({"task": "sand"}))
        assert doc["_id"] == f"house_sand:{OCCUR}"
        assert doc["data"]["field"] == "house_sand"
        assert doc["meta"]["fieldStructure"] == "%project%_%task%"

    def test_rename_onto_existing_doc(self, flaky_store, pushups, output):
        situps = add_doc(
            flaky_store, add_id_and_metadata({"field": "situps", "reps": 30}, occur_time=OCCUR),
        )
        flaky_store.put_calls.clear()

        with pytest.raises(DocExistsError) as exc_info:
            update_doc(flaky_store, PUSHUPS_ID, _payload({"field": "situps"}), output=output)

        err = exc_info.value
        assert err.existing["_id"] == situps["_id"]
        assert err.existing["data"]["reps"] == 30
        assert err.payload["_id"] == situps["_id"]
        assert err.payload["data"]["reps"] == 5
        # neither document touched
        assert flaky_store.get(PUSHUPS_ID)["_rev"] == pushups["_rev"]
        assert flaky_store.get(situps["_id"])["_rev"] == situps["_rev"]
        assert flaky_store.remove_calls == []
        assert output.actions == ["EXISTS", "FAILED"]

    def test_remove_failure_leaves_both(self, flaky_store, pushups, caplog):
        flaky_store.fail_remove = True
        with caplog.at_level(logging.WARNING, logger="daylog"):
            with pytest.raises(StoreConflictError):
                update_doc(flaky_store, PUSHUPS_ID, _payload({"field": "situps"}))
        assert flaky_store.get(PUSHUPS_ID)["_rev"] == pushups["_rev"]
        assert flaky_store.get(f"situps:{OCCUR}")["data"]["field"] == "situps"
        assert "both now exist" in caplog.text


class TestFailures:

    def test_missing_doc(self, flaky_store):
        with pytest.raises(NoDocToUpdateError) as exc_info:
            update_doc(flaky_store, "nope", _payload({"a": 1}))
        assert exc_info.value.id == "nope"
        assert flaky_store.write_count == 0

    def test_deleted_doc(self, store, pushups):
        store.remove(PUSHUPS_ID, pushups["_rev"])
        with pytest.raises(NoDocToUpdateError):
            update_doc(store, PUSHUPS_ID, _payload({"reps": 1}))

    def test_stale_rev_rejected_before_writing(self, flaky_store, pushups):
        payload = {"_rev": "1-stale", **_payload({"field": "situps"})}
        with pytest.raises(UpdateDocError):
            update_doc(flaky_store, PUSHUPS_ID, payload)
        assert flaky_store.write_count == 0

    def test_matching_rev_accepted(self, store, pushups):
        payload = {"_rev": pushups["_rev"], **_payload({"reps": 7})}
        assert update_doc(store, PUSHUPS_ID, payload)["data"]["reps"] == 7

    def test_same_id_conflict_propagates(self, flaky_store, pushups, output):
        flaky_store.fail_put_ids.add(PUSHUPS_ID)
        with pytest.raises(StoreConflictError):
            update_doc(flaky_store, PUSHUPS_ID, _payload({"reps": 7}), output=output)
        assert output.actions == ["FAILED"]
        assert flaky_store.get(PUSHUPS_ID)["data"]["reps"] == 5


class TestUnderivableId:

    def test_keeps_current_id(self, store):
        store.put({"_id": "custom", "data": {"a": 1}, "meta": {"humanId": "h1"}})
        doc = update_doc(store, "custom", _payload({"a": 2}))
        assert doc["_id"] == "custom"
        assert doc["data"]["a"] == 2


class TestViews:

    @pytest.fixture
    def view(self, store):
        store.put({"_id": "_design/stats", "views": {"count": {"map": "emit(1)"}}})
        return store.get("_design/stats")

    def test_replace_views(self, store, view):
        views = {"count": {"map": "emit(2)"}}
        doc = update_doc(store, "_design/stats", {"views": views})
        assert doc["views"] == views
        assert doc["_id"] == "_design/stats"

    def test_same_views_no_diff(self, flaky_store, view, output):
        update_doc(flaky_store, "_design/stats", {"views": dict(view["views"])}, output=output)
        assert flaky_store.write_count == 0
        assert output.actions == ["NODIFF"]

    def test_use_old(self, flaky_store, view):
        doc = update_doc(flaky_store, "_design/stats", {"views": {}}, "useOld")
        assert doc == view
        assert flaky_store.write_count == 0

    def test_use_new(self, store, view):
        doc = update_doc(store, "_design/stats", {"views": {"other": {}}}, "useNew")
        assert doc["views"] == {"other": {}}

    @pytest.mark.parametrize("strategy", ["append", "deepUpdate", "preferOld", "remove"])
    def test_unsupported_strategies(self, flaky_store, view, strategy):
        with pytest.raises(UpdateDocError):
            update_doc(flaky_store, "_design/stats", {"views": {"x": {}}}, strategy)
        assert flaky_store.write_count == 0

    def test_plain_fields_on_view(self, store, view):
        doc = update_doc(store, "_design/stats", {"language": "javascript"})
        assert doc["language"] == "javascript"
        assert doc["views"] == view["views"]


class TestDataOnly:

    @pytest.fixture
    def settings(self, store):
        store.put({"_id": "settings", "theme": "dark", "size": 12})
        return store.get("settings")

    def test_update_fields(self, store, settings):
        doc = update_doc(store, "settings", {"theme": "light"})
        assert doc == {"_id": "settings", "_rev": doc["_rev"], "theme": "light", "size": 12}

    def test_no_diff(self, flaky_store, settings):
        doc = update_doc(flaky_store, "settings", {"theme": "dark"})
        assert doc["_rev"] == settings["_rev"]
        assert flaky_store.write_count == 0

    def test_rev_in_payload_not_merged(self, store, settings):
        doc = update_doc(store, "settings", {"_rev": settings["_rev"], "size": 14})
        assert doc["size"] == 14
        assert doc["_rev"] != settings["_rev"]

    def test_rename_via_id(self, store, settings):
        doc = update_doc(store, "settings", {"_id": "preferences"})
        assert doc["_id"] == "preferences"
        assert doc["theme"] == "dark"
        assert not store.exists("settings")

    def test_use_new_keeps_id(self, store, settings):
        doc = update_doc(store, "settings", {"theme": "solar"}, "useNew")
        assert doc["_id"] == "settings"
        assert "size" not in doc


class TestExplicitId:

    @pytest.fixture
    def mine(self, store):
        payload = add_id_and_metadata(
            {"field": "pushups", "reps": 5}, occur_time=OCCUR, id="myid",
        )
        return add_doc(store, payload)

    def test_data_edit_keeps_id(self, flaky_store, mine):
        doc = update_doc(flaky_store, "myid", _payload({"reps": 6}))
        assert doc["_id"] == "myid"
        assert doc["data"]["reps"] == 6
        assert flaky_store.remove_calls == []

    def test_field_and_time_edits_keep_id(self, store, mine):
        update_doc(store, "myid", _payload({"field": "situps"}))
        doc = update_doc(store, "myid", _payload({}, occurTime="2026-04-01T00:00:00.000Z"))
        assert doc["_id"] == "myid"
        assert doc["data"]["field"] == "situps"

    def test_percent_in_id(self, store):
        add_doc(store, add_id_and_metadata({"reps": 5}, occur_time=OCCUR, id="50%off%x"))
        doc = update_doc(store, "50%off%x", _payload({"reps": 6}))
        assert doc["_id"] == "50%off%x"
