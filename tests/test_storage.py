"""
Test suite for storage backends

Tests CRUD operations and nested all-or-nothing transactions on both the
in-memory and SQLite backends.
"""

import threading
import time

import pytest

from rebase_vault.storage import InMemoryStorage, SQLiteStorage, create_storage


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestStorageOperations:
    """Test basic record operations"""

    def test_save_and_load(self, storage):
        storage.save("accounts", "a", {"principal": "10"})
        assert storage.load("accounts", "a") == {"principal": "10"}
        assert storage.load("accounts", "missing") is None

    def test_overwrite(self, storage):
        storage.save("accounts", "a", {"principal": "10"})
        storage.save("accounts", "a", {"principal": "20"})
        assert storage.load("accounts", "a") == {"principal": "20"}
        assert storage.count("accounts") == 1

    def test_load_all_keeps_insertion_order(self, storage):
        for key in ["c", "a", "b"]:
            storage.save("t", key, {"key": key})
        storage.save("t", "c", {"key": "c", "updated": True})

        assert [record["key"] for record in storage.load_all("t")] == ["c", "a", "b"]

    def test_exists_and_count(self, storage):
        assert not storage.exists("t", "a")
        assert storage.count("t") == 0
        storage.save("t", "a", {"x": 1})
        storage.save("t", "b", {"x": 2})
        assert storage.exists("t", "a")
        assert storage.count("t") == 2

    def test_find(self, storage):
        storage.save("t", "1", {"kind": "x", "n": 1})
        storage.save("t", "2", {"kind": "y", "n": 2})
        storage.save("t", "3", {"kind": "x", "n": 3})

        assert [r["n"] for r in storage.find("t", {"kind": "x"})] == [1, 3]

    def test_loaded_records_are_copies(self, storage):
        """Test mutating a loaded record does not change storage"""
        storage.save("t", "1", {"n": 1})
        record = storage.load("t", "1")
        record["n"] = 2
        assert storage.load("t", "1") == {"n": 1}


class TestTransactions:
    """Test atomic blocks"""

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("t", "1", {"n": 1})
            assert storage.in_transaction
        assert not storage.in_transaction
        assert storage.load("t", "1") == {"n": 1}

    def test_rollback(self, storage):
        storage.save("t", "1", {"n": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "1", {"n": 2})
                storage.save("t", "2", {"n": 3})
                raise RuntimeError("abort")

        assert storage.load("t", "1") == {"n": 1}
        assert storage.load("t", "2") is None
        assert not storage.in_transaction

    def test_nested_blocks_join_outer(self, storage):
        """Test a committed inner block is still undone by an outer failure"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("t", "1", {"n": 1})
                assert storage.in_transaction
                raise RuntimeError("abort")

        assert storage.load("t", "1") is None

    def test_inner_failure_rolls_back_everything(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "1", {"n": 1})
                with storage.atomic():
                    storage.save("t", "2", {"n": 2})
                    raise RuntimeError("abort")

        assert storage.count("t") == 0

    def test_table_created_in_rolled_back_block(self, storage):
        """Test a table first touched inside a failed block is still usable"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("fresh", "1", {"n": 1})
                raise RuntimeError("abort")

        storage.save("fresh", "2", {"n": 2})
        assert storage.count("fresh") == 1

    def test_other_thread_waits_for_open_transaction(self, storage):
        """Test a write from another thread is not swept into a rollback"""
        opened = threading.Event()
        attempted = threading.Event()
        writer_saw = []

        def owner():
            with pytest.raises(RuntimeError):
                with storage.atomic():
                    storage.save("t", "owner", {"n": 1})
                    opened.set()
                    attempted.wait(timeout=5)
                    time.sleep(0.05)
                    raise RuntimeError("abort")

        def writer():
            opened.wait(timeout=5)
            attempted.set()
            storage.save("t", "writer", {"n": 2})
            writer_saw.append(storage.load("t", "owner"))

        threads = [threading.Thread(target=owner), threading.Thread(target=writer)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert writer_saw == [None]
        assert storage.load("t", "writer") == {"n": 2}
        assert storage.load("t", "owner") is None
        assert not storage.in_transaction


class TestSQLitePersistence:
    """Test durability of the SQLite backend"""

    def test_reopen(self, tmp_path):
        path = tmp_path / "ledger.db"
        storage = SQLiteStorage(path)
        storage.save("t", "1", {"amount": str(2 ** 255)})
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("t", "1") == {"amount": str(2 ** 255)}
        reopened.close()


class TestCreateStorage:
    """Test URL-based backend selection"""

    def test_memory(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_memory(self):
        storage = create_storage("sqlite://:memory:")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == ":memory:"
        storage.close()

    def test_sqlite_file(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path}/vault.db")
        assert isinstance(storage, SQLiteStorage)
        storage.save("t", "1", {"n": 1})
        storage.close()
        assert (tmp_path / "vault.db").exists()

    def test_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_storage("postgresql://localhost/db")
