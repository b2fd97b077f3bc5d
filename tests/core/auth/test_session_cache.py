"""Tests for session cache backends."""

import json
import threading

import pytest

from core.auth import InMemorySessionCache, JsonFileSessionCache

BUNDLE = {"token": "tok", "userInfo": [{"userId": "u1", "loginAccount": "alice"}]}


class TestInMemorySessionCache:
    """Tests for the process-local backend."""

    def test_get_missing(self):
        assert InMemorySessionCache().get("default") is None

    def test_set_and_get(self):
        cache = InMemorySessionCache()
        cache.set("default", BUNDLE)
        assert cache.get("default") == BUNDLE

    def test_scopes_isolated(self):
        cache = InMemorySessionCache()
        cache.set("a", BUNDLE)
        assert cache.get("b") is None

    def test_set_none_clears(self):
        cache = InMemorySessionCache()
        cache.set("default", BUNDLE)
        cache.set("default", None)
        assert cache.get("default") is None

    def test_values_copied(self):
        """Mutating a returned value does not change the stored record."""
        cache = InMemorySessionCache()
        cache.set("default", BUNDLE)
        value = cache.get("default")
        value["token"] = "changed"
        value["userInfo"].clear()
        assert cache.get("default") == BUNDLE

    def test_clear(self):
        cache = InMemorySessionCache()
        cache.set("a", BUNDLE)
        cache.set("b", BUNDLE)
        cache.clear()
        assert cache.get("a") is None and cache.get("b") is None

    def test_concurrent_writers(self):
        cache = InMemorySessionCache()

        def writer(i):
            for _ in range(50):
                cache.set(f"scope{i}", {"token": str(i), "userInfo": [{}]})

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert all(cache.get(f"scope{i}")["token"] == str(i) for i in range(5))


class TestJsonFileSessionCache:
    """Tests for the file-backed backend."""

    def test_missing_file_reads_empty(self, tmp_path):
        cache = JsonFileSessionCache(tmp_path / "sessions.json")
        assert cache.get("default") is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "sessions.json"
        JsonFileSessionCache(path).set("default", BUNDLE)

        assert JsonFileSessionCache(path).get("default") == BUNDLE
        assert json.loads(path.read_text(encoding="utf-8")) == {"default": BUNDLE}

    def test_set_none_deletes_key(self, tmp_path):
        path = tmp_path / "sessions.json"
        cache = JsonFileSessionCache(path)
        cache.set("a", BUNDLE)
        cache.set("b", BUNDLE)
        cache.set("a", None)

        assert cache.get("a") is None
        assert json.loads(path.read_text(encoding="utf-8")) == {"b": BUNDLE}

    def test_delete_missing_key_does_not_write(self, tmp_path):
        path = tmp_path / "sessions.json"
        JsonFileSessionCache(path).set("a", None)
        assert not path.exists()

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", ""])
    def test_malformed_content_reads_empty(self, tmp_path, content):
        path = tmp_path / "sessions.json"
        path.write_text(content, encoding="utf-8")
        cache = JsonFileSessionCache(path)

        assert cache.get("default") is None
        cache.set("default", BUNDLE)
        assert cache.get("default") == BUNDLE

    def test_non_object_entry_ignored(self, tmp_path):
        path = tmp_path / "sessions.json"
        path.write_text(json.dumps({"default": "oops"}), encoding="utf-8")
        assert JsonFileSessionCache(path).get("default") is None

    def test_no_temp_files_left(self, tmp_path):
        cache = JsonFileSessionCache(tmp_path / "sessions.json")
        cache.set("default", BUNDLE)
        assert [p.name for p in tmp_path.iterdir()] == ["sessions.json"]

    def test_non_ascii_preserved(self, tmp_path):
        path = tmp_path / "sessions.json"
        JsonFileSessionCache(path).set("default", {"token": "t", "userInfo": [{"nickname": "用户"}]})
        assert "用户" in path.read_text(encoding="utf-8")
