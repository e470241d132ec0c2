import tempfile
import threading
import unittest
from functools import partial
from pathlib import Path

from application.services.collection_registry import DEFAULT_COLLECTIONS, CollectionRegistry
from domain.entities import VectorRecord
from domain.errors import NotFoundError, ValidationError
from infrastructure.repositories.sqlite_settings_repository import SqliteSettingsRepository
from infrastructure.storage.in_memory_vector_index import InMemoryVectorIndex
from infrastructure.storage.sqlite_vector_index import SqliteVectorIndex


class TestCollectionRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "kb.db"
        self.settings = SqliteSettingsRepository(self.db_path)
        self.registry = self._open_registry()

    def tearDown(self) -> None:
        self.registry.close()
        self._tmp.cleanup()

    def _open_registry(self) -> CollectionRegistry:
        registry = CollectionRegistry(
            dimension=2,
            index_factory=partial(SqliteVectorIndex, db_path=self.db_path),
            session_index_factory=InMemoryVectorIndex,
            settings=self.settings,
        )
        registry.init()
        return registry

    def test_init_creates_default_collections(self) -> None:
        names = [info.name for info in self.registry.list()]

        self.assertEqual(names, list(DEFAULT_COLLECTIONS))
        info = self.registry.info("personal")
        self.assertEqual(info.kind, "named")
        self.assertEqual(info.count, 0)
        self.assertEqual(info.metadata, {"description": "Default personal collection"})

    def test_create_and_get(self) -> None:
        info = self.registry.create("projects", {"icon": "folder"})

        self.assertEqual(info.name, "projects")
        self.assertEqual(info.metadata, {"icon": "folder"})
        self.assertTrue(self.registry.exists("projects"))
        self.assertEqual(self.registry.get("projects").name, "projects")

    def test_create_rejects_default_and_duplicate_names(self) -> None:
        self.registry.create("projects")

        with self.assertRaises(ValidationError):
            self.registry.create("personal")
        with self.assertRaises(ValidationError):
            self.registry.create("projects")
        with self.assertRaises(ValidationError):
            self.registry.create("session_abc")

    def test_create_rejects_unsafe_names(self) -> None:
        for name in ("", "../escape", "a/b", ".hidden", "x" * 200):
            with self.subTest(name=name), self.assertRaises(ValidationError):
                self.registry.create(name)

    def test_session_ids_are_opaque(self) -> None:
        for name in ("session_tab:42", "session_user@host", "session_a/b"):
            with self.subTest(name=name):
                index = self.registry.get_or_create(name)
                self.assertIsInstance(index, InMemoryVectorIndex)
                self.assertEqual(self.registry.info(name).kind, "session")
        with self.assertRaises(ValidationError):
            self.registry.get_or_create("../escape")

    def test_get_unknown_collection_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.registry.get("ghost")
        with self.assertRaises(LookupError):
            self.registry.info("ghost")

    def test_delete_removes_index_and_catalogue_entry(self) -> None:
        index = self.registry.get_or_create("projects")
        index.insert([VectorRecord(id="r1", vector=[1.0, 0.0], text="t")])

        self.registry.delete("projects")

        self.assertFalse(self.registry.exists("projects"))
        reopened = self._open_registry()
        self.assertFalse(reopened.exists("projects"))
        recreated = reopened.get_or_create("projects")
        self.assertEqual(recreated.count(), 0)
        reopened.close()

    def test_default_collections_cannot_be_deleted(self) -> None:
        with self.assertRaises(ValidationError):
            self.registry.delete("personal")
        with self.assertRaises(NotFoundError):
            self.registry.delete("ghost")

    def test_named_collections_survive_restart(self) -> None:
        self.registry.create("projects", {"icon": "folder"})
        self.registry.get("projects").insert([VectorRecord(id="r1", vector=[1.0, 0.0], text="t")])
        self.registry.close()

        self.registry = self._open_registry()

        self.assertTrue(self.registry.exists("projects"))
        self.assertEqual(self.registry.info("projects").metadata, {"icon": "folder"})
        self.assertEqual(self.registry.get("projects").count(), 1)

    def test_session_collections_are_in_memory_and_not_catalogued(self) -> None:
        index = self.registry.get_or_create("session_abc")

        self.assertIsInstance(index, InMemoryVectorIndex)
        self.assertEqual(self.registry.info("session_abc").kind, "session")
        self.assertNotIn("session_abc", [info.name for info in self.registry.list(include_sessions=False)])
        self.assertIn("session_abc", [info.name for info in self.registry.list()])
        self.assertNotIn("session_abc", self.settings.get("collections"))

        reopened = self._open_registry()
        self.assertFalse(reopened.exists("session_abc"))
        reopened.close()

    def test_locks_are_per_collection(self) -> None:
        acquired = threading.Event()

        def write_other_collection() -> None:
            with self.registry.lock("work"):
                acquired.set()

        with self.registry.lock("personal"):
            worker = threading.Thread(target=write_other_collection)
            worker.start()
            worker.join(timeout=5)

        self.assertTrue(acquired.is_set())

    def test_same_collection_lock_is_exclusive(self) -> None:
        entered = threading.Event()

        def write_same_collection() -> None:
            with self.registry.lock("personal"):
                entered.set()

        with self.registry.lock("personal"):
            worker = threading.Thread(target=write_same_collection)
            worker.start()
            self.assertFalse(entered.wait(timeout=0.2))
        worker.join(timeout=5)
        self.assertTrue(entered.is_set())


if __name__ == "__main__":
    unittest.main()
