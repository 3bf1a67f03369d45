"""Tests for CacheEngine (memory + disk orchestration)."""

import logging
import os
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from flatcache.cache import codec
from flatcache.cache.engine import CacheEngine, _normalize_group, _to_int


class TestGetSet:
    def test_set_then_get(self, engine):
        assert engine.set("k", "value", "posts") is True
        assert engine.get("k", "posts") == "value"

    def test_get_miss_returns_default(self, engine):
        assert engine.get("missing", "posts") is None
        sentinel = object()
        assert engine.get("missing", "posts", default=sentinel) is sentinel

    def test_falsy_values_are_hits(self, engine):
        sentinel = object()
        for key, value in [("none", None), ("false", False), ("zero", 0), ("empty", "")]:
            engine.set(key, value)
            assert engine.get(key, default=sentinel) == value
            assert engine.get(key, default=sentinel) is not sentinel

    def test_empty_group_is_default(self, engine):
        engine.set("k", 1, "")
        assert engine.get("k", "default") == 1
        assert engine.get("k", None) == 1
        assert engine.get("k") == 1

    def test_int_and_str_keys_match(self, engine):
        engine.set(5, "five", "g")
        assert engine.get("5", "g") == "five"

    def test_groups_are_separate_namespaces(self, engine):
        engine.set("k", "a", "g1")
        engine.set("k", "b", "g2")
        assert engine.get("k", "g1") == "a"
        assert engine.get("k", "g2") == "b"

    def test_set_writes_entry_file(self, engine):
        engine.set("k", {"a": 1}, "posts")
        path = engine.path_for("k", "posts")
        assert path.is_file()
        assert codec.decode(path.read_bytes()) == {"a": 1}

    def test_set_overwrites(self, engine):
        engine.set("k", "first")
        engine.set("k", "second")
        assert engine.get("k") == "second"

    def test_ttl_zero_uses_default_expiration(self, make_engine, clock):
        engine = make_engine(default_expiration=3600)
        engine.set("k", "v", "g", ttl=0)
        mtime = os.stat(engine.path_for("k", "g")).st_mtime
        assert mtime == pytest.approx(clock.now + 3600)

    def test_explicit_ttl_sets_mtime(self, engine, clock):
        engine.set("k", "v", "g", ttl=90)
        assert os.stat(engine.path_for("k", "g")).st_mtime == pytest.approx(clock.now + 90)

    def test_unsupported_value_is_refused_without_raising(self, engine, caplog):
        with caplog.at_level(logging.WARNING, logger="flatcache.cache.engine"):
            assert engine.set("k", object(), "g") is False
        assert engine.get("k", "g") is None
        assert not engine.path_for("k", "g").exists()
        assert "Not caching" in caplog.text

    def test_unsupported_value_keeps_previous_entry(self, engine):
        engine.set("k", "old", "g")
        assert engine.add("k2", lambda: None, "g") is False
        assert engine.replace("k", object(), "g") is False
        assert engine.get("k", "g") == "old"

    def test_date_and_decimal_values_persist(self, make_engine):
        value = {"day": date(2024, 2, 29), "price": Decimal("9.99")}
        assert make_engine().set("k", value, "g") is True
        assert make_engine().get("k", "g") == value


class TestDiskTier:
    def test_value_survives_restart(self, make_engine):
        make_engine().set("k", [1, {"two": (3,)}], "posts")
        fresh = make_engine()
        assert fresh.get("k", "posts") == [1, {"two": (3,)}]

    def test_disk_hit_promotes_to_memory(self, make_engine):
        make_engine().set("k", "v", "posts")
        fresh = make_engine()
        fresh.get("k", "posts")
        fresh.path_for("k", "posts").unlink()
        assert fresh.get("k", "posts") == "v"
        ops = [op.kind.value for op in fresh.stats().group_ops["posts"]]
        assert ops == ["Hit (Disk)", "Hit (Mem)"]

    def test_corrupt_file_is_miss_and_removed(self, make_engine, caplog):
        engine = make_engine()
        path = engine.path_for("k", "posts")
        engine.disk.write(path, b"definitely not an entry", ttl=60)
        with caplog.at_level(logging.WARNING, logger="flatcache.cache.engine"):
            assert engine.get("k", "posts") is None
        assert not path.exists()
        assert "corrupt" in caplog.text.lower()

    def test_file_vanishing_before_read_is_miss(self, make_engine, monkeypatch):
        make_engine().set("k", "v", "posts")
        fresh = make_engine()

        def vanished(path):
            raise FileNotFoundError(path)

        monkeypatch.setattr(fresh.disk, "read", vanished)
        assert fresh.get("k", "posts") is None
        assert fresh.stats().misses == 1

    def test_persist_failure_keeps_memory_copy(self, engine, cache_dir):
        blocker = cache_dir / f"blog_{engine.tenant_prefix}"
        blocker.write_text("file where a directory should be")
        assert engine.set("k", "v", "posts") is False
        assert engine.get("k", "posts") == "v"

    @pytest.mark.parametrize("key", ["k" * 300, "\u00e9" * 120])
    def test_long_key_survives_restart(self, make_engine, key):
        assert make_engine().set(key, "v", "g") is True
        fresh = make_engine()
        assert fresh.get(key, "g") == "v"
        assert fresh.add(key, "other", "g") is False
        assert fresh.delete(key, "g") is True

    def test_reader_during_write_sees_live_entry(self, make_engine):
        writer = make_engine()
        reader = make_engine()
        seen = []
        real_replace = os.replace

        def replace_then_read(src, dst):
            real_replace(src, dst)
            seen.append(reader.get("k", "g"))

        with patch("flatcache.cache.disk.os.replace", side_effect=replace_then_read):
            assert writer.set("k", "v", "g") is True
        assert seen == ["v"]
        assert writer.path_for("k", "g").is_file()

    def test_index_key_leaves_index_file_alone(self, make_engine):
        engine = make_engine()
        engine.set("other", 1, "g")
        index = engine.path_for("other", "g").parent / "index.php"

        assert engine.get("index", "g") is None
        assert index.is_file()
        ops = [op.kind.value for op in engine.stats().group_ops["g"]]
        assert ops[-1] == "Miss (Empty)"

        assert engine.set("index", "entry", "g") is True
        assert index.read_bytes() == b""
        assert make_engine().get("index", "g") == "entry"
        assert engine.disk.usage().files == 2


class TestDeepCopy:
    def test_mutating_original_after_set(self, engine):
        value = {"list": [1, 2]}
        engine.set("k", value)
        value["list"].append(3)
        assert engine.get("k") == {"list": [1, 2]}

    def test_mutating_result_of_get(self, engine):
        engine.set("k", {"list": [1, 2]})
        result = engine.get("k")
        result["list"].append(3)
        assert engine.get("k") == {"list": [1, 2]}

    def test_mutating_result_of_disk_hit(self, make_engine):
        make_engine().set("k", [1, 2])
        fresh = make_engine()
        result = fresh.get("k")
        result.append(3)
        assert fresh.get("k") == [1, 2]


class TestAdd:
    def test_add_new_key(self, engine):
        assert engine.add("k", "v", "g") is True
        assert engine.get("k", "g") == "v"

    def test_add_is_strict(self, engine):
        engine.set("k", "v1", "g")
        assert engine.add("k", "v2", "g") is False
        assert engine.get("k", "g") == "v1"

    def test_add_sees_disk_entry(self, make_engine):
        make_engine().set("k", "v1", "g")
        fresh = make_engine()
        assert fresh.add("k", "v2", "g") is False
        assert fresh.get("k", "g") == "v1"

    def test_add_over_expired_entry(self, make_engine, clock):
        make_engine().set("k", "old", "g", ttl=10)
        clock.advance(20)
        fresh = make_engine()
        assert fresh.add("k", "new", "g") is True
        assert fresh.get("k", "g") == "new"

    def test_add_suspended(self, make_engine):
        engine = make_engine(suspend_additions=True)
        assert engine.add("k", "v", "g") is False
        assert engine.get("k", "g") is None

    def test_suspend_toggle(self, engine):
        engine.suspend_additions = True
        assert engine.add("k", "v") is False
        engine.suspend_additions = False
        assert engine.add("k", "v") is True


class TestReplace:
    def test_replace_missing_fails_and_leaves_nothing(self, engine):
        assert engine.replace("k", "v", "g") is False
        assert engine.get("k", "g") is None
        assert not engine.path_for("k", "g").exists()

    def test_replace_existing(self, engine):
        engine.set("k", "v1", "g")
        assert engine.replace("k", "v2", "g") is True
        assert engine.get("k", "g") == "v2"

    def test_replace_checks_memory_only_by_default(self, make_engine):
        make_engine().set("k", "v1", "g")
        assert make_engine().replace("k", "v2", "g") is False

    def test_replace_disk_aware_when_configured(self, make_engine):
        make_engine().set("k", "v1", "g")
        fresh = make_engine(existence_check="disk")
        assert fresh.replace("k", "v2", "g") is True
        assert make_engine().get("k", "g") == "v2"


class TestDelete:
    def test_delete_removes_both_tiers(self, engine):
        engine.set("k", "v", "g")
        path = engine.path_for("k", "g")
        assert engine.delete("k", "g") is True
        assert engine.get("k", "g") is None
        assert not path.exists()

    def test_delete_missing_returns_false(self, engine):
        assert engine.delete("k", "g") is False

    def test_delete_disk_only_entry(self, make_engine):
        make_engine().set("k", "v", "g")
        fresh = make_engine()
        assert fresh.delete("k", "g") is True
        assert not fresh.path_for("k", "g").exists()


class TestExpiration:
    def test_expired_entry_is_miss_and_file_removed(self, engine, clock):
        engine.set("k", "v", "g", ttl=1)
        path = engine.path_for("k", "g")
        clock.advance(2)
        assert engine.get("k", "g") is None
        assert not path.exists()

    def test_expired_on_restart(self, make_engine, clock):
        make_engine().set("k", "v", "g", ttl=1)
        clock.advance(2)
        fresh = make_engine()
        assert fresh.get("k", "g") is None
        assert not fresh.path_for("k", "g").exists()
        ops = [op.kind.value for op in fresh.stats().group_ops["g"]]
        assert "Miss (Expired)" in ops

    def test_not_yet_expired(self, engine, clock):
        engine.set("k", "v", "g", ttl=10)
        clock.advance(9)
        assert engine.get("k", "g") == "v"

    def test_payload_expiry_source(self, make_engine, clock):
        engine = make_engine(expiry_source="payload")
        engine.set("k", "v", "g", ttl=100)
        path = engine.path_for("k", "g")
        # mtime lost (e.g. a copy that does not preserve timestamps)
        os.utime(path, (clock.now - 50, clock.now - 50))
        fresh = make_engine(expiry_source="payload")
        assert fresh.get("k", "g") == "v"

    def test_payload_expiry_source_expires(self, make_engine, clock):
        make_engine(expiry_source="payload").set("k", "v", "g", ttl=10)
        path = make_engine().path_for("k", "g")
        os.utime(path, (clock.now + 10_000, clock.now + 10_000))
        clock.advance(20)
        fresh = make_engine(expiry_source="payload")
        assert fresh.get("k", "g") is None
        assert not path.exists()


class TestIncrementDecrement:
    def test_missing_key_returns_false(self, engine):
        assert engine.increment("k", 1, "g") is False
        assert engine.decrement("k", 1, "g") is False

    def test_increment(self, engine):
        engine.set("k", 5, "g")
        assert engine.increment("k", 3, "g") == 8
        assert engine.get("k", "g") == 8

    def test_increment_default_offset(self, engine):
        engine.set("k", 5)
        assert engine.increment("k") == 6

    def test_decrement_floors_at_zero(self, engine):
        engine.set("k", 5, "g")
        assert engine.decrement("k", 10, "g") == 0
        assert engine.get("k", "g") == 0

    def test_decrement(self, engine):
        engine.set("k", 5, "g")
        assert engine.decrement("k", 2, "g") == 3

    def test_coerces_stored_value(self, engine):
        engine.set("k", "12abc", "g")
        assert engine.increment("k", 1, "g") == 13

    def test_persists_new_value(self, make_engine):
        engine = make_engine()
        engine.set("k", 5, "g")
        engine.increment("k", 2, "g")
        assert make_engine().get("k", "g") == 7

    def test_increment_preserves_remaining_ttl(self, engine, clock):
        engine.set("k", 1, "g", ttl=100)
        path = engine.path_for("k", "g")
        expires_at = os.stat(path).st_mtime
        clock.advance(30)
        engine.increment("k", 1, "g")
        assert os.stat(path).st_mtime == pytest.approx(expires_at)

    def test_decrement_preserves_remaining_ttl(self, engine, clock):
        engine.set("k", 10, "g", ttl=100)
        path = engine.path_for("k", "g")
        expires_at = os.stat(path).st_mtime
        clock.advance(30)
        engine.decrement("k", 1, "g")
        assert os.stat(path).st_mtime == pytest.approx(expires_at)

    def test_memory_only_existence_by_default(self, make_engine):
        make_engine().set("k", 5, "g")
        assert make_engine().increment("k", 1, "g") is False

    def test_disk_aware_existence(self, make_engine):
        make_engine().set("k", 5, "g")
        assert make_engine(existence_check="disk").increment("k", 1, "g") == 6


class TestToInt:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (7, 7),
            (True, 1),
            (False, 0),
            (3.9, 3),
            (-3.9, -3),
            ("42", 42),
            ("  -8 apples", -8),
            ("abc", 0),
            (None, 0),
            ([1], 1),
            ([], 0),
            (float("nan"), 0),
        ],
    )
    def test_coercion(self, value, expected):
        assert _to_int(value) == expected


class TestFlush:
    def test_flush_clears_everything(self, make_engine):
        engine = make_engine(global_groups={"users"})
        engine.set("a", 1, "posts")
        engine.set("b", 2, "site/options")
        engine.set("c", 3, "users")
        paths = [engine.path_for("a", "posts"), engine.path_for("c", "users")]

        assert engine.flush() is True

        assert engine.get("a", "posts") is None
        assert engine.get("b", "site/options") is None
        assert engine.get("c", "users") is None
        assert not any(p.exists() for p in paths)

    def test_no_entry_files_remain(self, engine, cache_dir):
        engine.set("a", 1, "posts")
        engine.flush()
        if cache_dir.exists():
            leftovers = [
                p for p in cache_dir.rglob("*") if p.is_file() and p.name != "index.php"
            ]
            assert leftovers == []

    def test_flush_on_missing_root(self, engine, cache_dir):
        engine.flush()
        assert engine.flush() is True

    def test_set_after_flush(self, engine):
        engine.set("a", 1)
        engine.flush()
        assert engine.set("a", 2) is True
        assert engine.get("a") == 2


class TestTenants:
    def test_tenant_isolation(self, engine):
        engine.set("k", "tenant-1", "posts")
        assert engine.switch_to_tenant(2) is True
        assert engine.get("k", "posts") is None

    def test_tenant_isolation_across_restart(self, make_engine):
        make_engine(tenant_id=1).set("k", "tenant-1", "posts")
        assert make_engine(tenant_id=2).get("k", "posts") is None
        assert make_engine(tenant_id=1).get("k", "posts") == "tenant-1"

    def test_switch_back_sees_own_values(self, engine):
        engine.set("k", "one", "posts")
        engine.switch_to_tenant(2)
        engine.set("k", "two", "posts")
        engine.switch_to_tenant(1)
        assert engine.get("k", "posts") == "one"

    def test_global_group_shared(self, make_engine):
        engine = make_engine(global_groups={"users"})
        engine.set("k", "shared", "users")
        engine.switch_to_tenant(7)
        assert engine.get("k", "users") == "shared"
        assert make_engine(global_groups={"users"}, tenant_id=9).get("k", "users") == "shared"

    def test_add_global_groups(self, engine):
        engine.add_global_groups("users")
        engine.add_global_groups(["users", "options"])
        assert engine.global_groups == frozenset({"users", "options"})
        assert engine.path_for("k", "users").parent.parent.name == "blog_global"

    @pytest.mark.parametrize("tenant", [0, -1, None, "abc", False, 2.7, float("nan")])
    def test_invalid_tenant_rejected(self, engine, tenant):
        before = engine.tenant_prefix
        assert engine.switch_to_tenant(tenant) is False
        assert engine.tenant_id == 1
        assert engine.tenant_prefix == before

    def test_tenant_dir_is_hashed(self, engine):
        assert engine.path_for("k", "posts").parts[-3] == f"blog_{engine.tenant_prefix}"
        assert engine.tenant_prefix != "1"

    def test_unhashed_tenant_dir(self, make_engine):
        engine = make_engine(hash_tenant=False)
        assert engine.path_for("k", "posts").parts[-3] == "blog_1"

    def test_single_tenant_layout(self, make_engine, cache_dir):
        engine = make_engine(multisite=False)
        assert engine.path_for("k", "posts") == cache_dir / "posts" / "k.php"


class TestNonPersistentGroups:
    def test_default_comment_group_is_memory_only(self, engine):
        engine.set("k", "v", "comment")
        assert engine.get("k", "comment") == "v"
        assert not engine.path_for("k", "comment").exists()

    def test_configured_group_memory_only(self, make_engine):
        engine = make_engine(non_persistent_groups={"request"})
        engine.set("k", "v", "request")
        assert not engine.path_for("k", "request").exists()
        assert make_engine(non_persistent_groups={"request"}).get("k", "request") is None

    def test_add_non_persistent_groups(self, engine):
        engine.add_non_persistent_groups(["tmp"])
        engine.set("k", "v", "tmp")
        assert not engine.path_for("k", "tmp").exists()
        assert engine.delete("k", "tmp") is True

    def test_non_persistent_accepts_any_value(self, engine):
        marker = object()
        engine.set("k", {"obj": [marker]}, "comment")
        stored = engine.get("k", "comment")["obj"][0]
        assert type(stored) is object
        assert stored is not marker


class TestStats:
    def test_hits_and_misses(self, engine):
        engine.set("k", "v")
        engine.get("k")
        engine.get("k")
        engine.get("missing")
        stats = engine.stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.memory_entries == 1

    def test_op_log_per_group(self, engine):
        engine.set("k", "v", "posts", ttl=30)
        engine.delete("k", "posts")
        ops = engine.stats().group_ops["posts"]
        assert [op.kind.value for op in ops] == ["Set", "Delete"]
        assert ops[0].ttl == 30
        assert ops[0].describe() == "Set Tenant 1/k (30s)"

    def test_op_log_bounded(self, make_engine):
        engine = make_engine(op_log_limit=3)
        for i in range(10):
            engine.set(str(i), i)
        assert len(engine.stats().group_ops["default"]) == 3

    def test_op_log_disabled(self, make_engine):
        engine = make_engine(op_log_limit=0)
        engine.set("k", "v")
        assert engine.stats().group_ops == {}


class TestLifecycle:
    def test_close(self, engine):
        assert engine.close() is True

    def test_creates_root_with_index(self, engine, cache_dir):
        assert (cache_dir / "index.php").is_file()

    def test_from_config_uses_overrides(self, cache_dir):
        engine = CacheEngine.from_config(cache_dir=cache_dir, tenant_id=4, secret="x")
        assert engine.config.cache_dir == cache_dir
        assert engine.tenant_id == 4


class TestGroupNames:
    @pytest.mark.parametrize("group", ["a/", "/a", "a//", "//a//"])
    def test_empty_segments_collapse(self, group):
        assert _normalize_group(group) == "a"

    def test_nested_group_kept(self):
        assert _normalize_group("/site//options/") == "site/options"

    @pytest.mark.parametrize("group", ["", None, "/", "//"])
    def test_empty_is_default(self, group):
        assert _normalize_group(group) == "default"

    def test_equivalent_groups_share_an_entry(self, make_engine):
        engine = make_engine()
        engine.set("k", "from a/", "a/")
        engine.set("k", "from a", "a")
        assert engine.get("k", "a/") == "from a"
        assert make_engine().get("k", "a/") == "from a"

    def test_configured_groups_are_canonical(self, make_engine):
        engine = make_engine(global_groups={"users/"}, non_persistent_groups={"/tmp"})
        assert engine.global_groups == frozenset({"users"})
        engine.set("k", "v", "tmp")
        assert not engine.path_for("k", "tmp").exists()
