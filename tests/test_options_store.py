"""Tests for Options validation and the OptionsStore."""

import json
import threading

import pytest

from callvis.core.options_store import OptionsStore, canonical_json
from callvis.errors import OptionsError
from callvis.models.options import Options


class TestOptions:
    def test_defaults(self):
        options = Options()
        assert options.focus == "main"
        assert options.group == "pkg"
        assert options.nostd is True
        assert options.nointer is True
        assert options.include_tests is False
        assert (options.minlen, options.nodesep, options.rankdir) == (2, 0.35, "LR")

    def test_prefix_lists_split(self):
        options = Options(limit="a, b,,c")
        assert options.limit == ("a", "b", "c")

    def test_group_canonical(self):
        assert Options(group="type,pkg").group == "pkg,type"
        assert Options(group="none").group == ""

    def test_group_unknown(self):
        with pytest.raises(ValueError):
            Options(group="file")

    def test_rankdir_invalid(self):
        with pytest.raises(ValueError):
            Options(rankdir="XY")

    def test_format_invalid(self):
        with pytest.raises(ValueError):
            Options(format="svg; rm -rf /")

    def test_frozen(self):
        with pytest.raises(ValueError):
            Options().focus = "x"

    def test_canonical_json_stable(self):
        assert canonical_json(Options(group="type,pkg")) == canonical_json(Options(group="pkg,type"))


class TestStore:
    def test_snapshot_is_immutable_copy(self):
        store = OptionsStore()
        snap = store.snapshot()
        store.apply_overrides({"focus": "lib"})
        assert snap.focus == "main"
        assert store.snapshot().focus == "lib"

    def test_unknown_keys_ignored(self):
        store = OptionsStore()
        updated = store.apply_overrides({"refresh": "true", "colour": "red", "nostd": "false"})
        assert updated.nostd is False
        assert updated == Options(nostd=False)

    def test_aliases(self):
        store = OptionsStore()
        updated = store.apply_overrides({"f": "lib", "tests": "1"})
        assert updated.focus == "lib"
        assert updated.include_tests is True

    def test_invalid_value_rejected_and_store_unchanged(self):
        store = OptionsStore()
        with pytest.raises(OptionsError, match="minlen"):
            store.apply_overrides({"minlen": "zero"})
        assert store.snapshot() == Options()

    def test_serialize_roundtrip(self):
        store = OptionsStore(Options(focus="lib", ignore=("x",)))
        assert OptionsStore.deserialize(store.serialize()) == store.snapshot()

    def test_deserialize_invalid(self):
        with pytest.raises(OptionsError):
            OptionsStore.deserialize(b"{nope")

    def test_update_merges_partial_payload(self):
        store = OptionsStore()
        store.update(json.dumps({"group": "type", "limit": ["lib"]}))
        snap = store.snapshot()
        assert snap.group == "type"
        assert snap.limit == ("lib",)
        assert snap.focus == "main"

    @pytest.mark.parametrize("payload", ["[1, 2]", "not json"])
    def test_update_rejects_non_objects(self, payload):
        with pytest.raises(OptionsError):
            OptionsStore().update(payload)

    def test_reset(self):
        initial = Options(focus="lib")
        store = OptionsStore(initial)
        store.apply_overrides({"focus": "app"})
        assert store.reset() == initial

    def test_concurrent_overrides(self):
        store = OptionsStore()

        def writer(i: int):
            for _ in range(50):
                store.apply_overrides({"minlen": str(i + 1)})
                assert store.snapshot().minlen >= 1

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert 1 <= store.snapshot().minlen <= 8
