import threading

import pytest

import memdb
from memdb import BadKeyFormat, KeyNotFound, ReservedKey, StoreClosed, StoreOptions
from memdb.storage import SnapshotLog


@pytest.fixture
def store(db_dir):
    db = memdb.open(db_dir)
    db.put("users", [{"name": "Evance"}, {"name": "Alex"}])
    db.put("server.port", 3000, loose=True)
    return db


def test_new_store_metadata(db_dir):
    db = memdb.open(db_dir, encryption_key="secret")
    assert db.version() == memdb.__version__
    assert db.revision() == 0
    assert db.pending() == 0
    assert db.all() == {}
    assert db.options() == StoreOptions(staging_threshold=600, encryption_key="secret")


def test_options_accept_camel_case_names(db_dir):
    db = memdb.open(db_dir, StoreOptions(staging_threshold=5), encryptionKey="secret")
    assert db.options() == StoreOptions(5, "secret")


def test_concrete_scenario(db_dir):
    db = memdb.open(db_dir)
    assert db.put("server.port", 3000, loose=True) is None
    assert db.get("server.port") == 3000
    assert db.get("server.host", "127.0.0.1") == "127.0.0.1"
    assert db.all() == {"server": {"port": 3000}}
    db.delete("server.port")
    assert db.get("server") == {}


def test_get_values(store):
    assert store.get("server") == {"port": 3000}
    assert store.get("server.host", "http://127.0.0.1") == "http://127.0.0.1"
    assert store.get("users") == [{"name": "Evance"}, {"name": "Alex"}]


def test_get_missing_raises(store):
    with pytest.raises(KeyNotFound):
        store.get("serve")
    with pytest.raises(KeyNotFound):
        store.get("server.host")


@pytest.mark.parametrize("value", [0, "", False, None])
def test_falsy_values_are_real_values(store, value):
    store.put("server.flag", value)
    assert store.get("server.flag") == value
    assert store.get("server.flag", "default") == value


def test_none_is_a_valid_default(store):
    assert store.get("server.host", None) is None


@pytest.mark.parametrize("key", ["name-", ".name", "name.", "a..b", "with space"])
def test_bad_keys_are_rejected_without_mutation(store, key):
    before = store.all()
    pending = store.pending()
    with pytest.raises(BadKeyFormat):
        store.put(key, 1)
    with pytest.raises(BadKeyFormat):
        store.get(key)
    with pytest.raises(BadKeyFormat):
        store.delete(key)
    assert store.all() == before
    assert store.pending() == pending


@pytest.mark.parametrize("key", ["revision", "revision.count"])
def test_revision_key_is_reserved(store, key):
    with pytest.raises(ReservedKey) as info:
        store.put(key, 5, loose=True)
    assert info.value.type == "RESERVED_KEY"
    assert not isinstance(info.value, BadKeyFormat)
    with pytest.raises(ReservedKey):
        store.get(key)
    with pytest.raises(ReservedKey):
        store.delete(key)
    assert store.revision() == 0


def test_strict_put_fails_and_loose_put_succeeds(store):
    before = store.all()
    with pytest.raises(KeyNotFound):
        store.put("family.me.members", [{"name": "Alex"}])
    assert store.all() == before
    assert store.pending() == 2

    store.put("family.me.members", [{"name": "Alex"}], loose=True)
    store.put("family.name", "Soumaoro")
    assert store.get("family") == {"me": {"members": [{"name": "Alex"}]}, "name": "Soumaoro"}


def test_delete(store):
    store.delete("users")
    store.delete("server.port")
    assert store.all() == {"server": {}}

    with pytest.raises(KeyNotFound):
        store.delete("server.port")
    with pytest.raises(KeyNotFound):
        store.get("server.port")
    assert store.pending() == 4


def test_unserializable_value_leaves_tree_untouched(store):
    before = store.all()
    with pytest.raises(TypeError):
        store.put("server.handler", object())
    with pytest.raises(ValueError):
        store.put("server.ratio", float("inf"))
    assert store.all() == before
    assert store.pending() == 2


def test_returned_structures_are_independent(store):
    snapshot = store.all()
    snapshot["server"]["port"] = 1
    server = store.get("server")
    server["host"] = "evil"

    value = {"nested": [1, 2]}
    store.put("config", value)
    value["nested"].append(3)

    assert store.get("server") == {"port": 3000}
    assert store.get("config") == {"nested": [1, 2]}
    assert "revision" not in store.all()


def test_reopen_reproduces_state_and_bumps_revision_once(db_dir):
    db = memdb.open(db_dir, encryption_key="secret")
    db.put("server.port", 3000, loose=True)
    db.put("server.host", "localhost")
    db.put("users", ["Evance", "Alex"])
    db.delete("users")
    db.put("count", 0)
    state, revision = db.all(), db.revision()
    db.close()

    reopened = memdb.open(db_dir, encryption_key="secret")
    assert reopened.all() == state
    assert reopened.revision() == revision + 1
    assert reopened.pending() == 0


def test_staging_threshold_flushes_automatically(db_dir):
    db = memdb.open(db_dir, staging_threshold=5)
    for i in range(4):
        db.put(f"k{i}", i)
    assert db.pending() == 4
    assert db.revision() == 0

    db.put("k4", 4)
    assert db.pending() == 0
    assert db.revision() == 1

    db.delete("k0")
    assert db.pending() == 1


def test_explicit_flush(store):
    assert store.flush() is True
    assert store.revision() == 1
    assert store.pending() == 0


def test_closed_store_rejects_calls(db_dir):
    with memdb.open(db_dir) as db:
        db.put("a", 1)
    with pytest.raises(StoreClosed):
        db.get("a")
    with pytest.raises(StoreClosed):
        db.put("a", 2)
    db.close()


def test_wrong_passphrase_fails_to_open(db_dir):
    memdb.open(db_dir, encryption_key="secret").put("a", 1)
    with pytest.raises(memdb.DecryptionError):
        memdb.open(db_dir, encryption_key="wrong")


def test_concurrent_writers_do_not_lose_updates(db_dir):
    db = memdb.open(db_dir, staging_threshold=7)
    db.put("workers", {})

    def work(n):
        db.put(f"workers.w{n}", {}, loose=False)
        for i in range(25):
            db.put(f"workers.w{n}.i{i}", i)

    threads = [threading.Thread(target=work, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    expected = {f"w{n}": {f"i{i}": i for i in range(25)} for n in range(4)}
    assert db.get("workers") == expected
    db.close()

    assert memdb.open(db_dir, staging_threshold=7).get("workers") == expected


def test_values_are_stored_in_their_json_form(db_dir):
    db = memdb.open(db_dir)
    db.put("a", {1: "x", "nested": (1, (2, 3))})
    db.put("t", (1, 2))

    assert db.get("a.1") == "x"
    assert db.get("t") == [1, 2]
    state = db.all()
    assert state == {"a": {"1": "x", "nested": [1, [2, 3]]}, "t": [1, 2]}
    db.close()

    reopened = memdb.open(db_dir)
    assert reopened.all() == state
    assert reopened.get("a.1") == "x"


def test_failed_log_truncation_then_reopen_bumps_revision_once(db_dir, monkeypatch):
    db = memdb.open(db_dir)
    db.put("server.port", 3000, loose=True)
    db.put("users", ["Evance"])

    real_write = SnapshotLog._write

    def failing_log(self, path, text):
        if path == self.log_path:
            raise memdb.FileError("log write failed")
        real_write(self, path, text)

    monkeypatch.setattr(SnapshotLog, "_write", failing_log)
    assert db.flush() is False
    monkeypatch.undo()

    state, revision = db.all(), db.revision()
    db.close()

    reopened = memdb.open(db_dir)
    assert reopened.all() == state
    assert reopened.revision() == revision + 1


def test_metadata_accessors_raise_after_close(db_dir):
    db = memdb.open(db_dir)
    db.close()
    for accessor in (db.version, db.options, db.revision, db.pending, db.all, db.flush):
        with pytest.raises(StoreClosed):
            accessor()
