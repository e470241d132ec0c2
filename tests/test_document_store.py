import tempfile
import unittest
from pathlib import Path

from application.services.document_store import DOCUMENTS_KEY, DocumentStore
from domain.entities import Document
from domain.errors import NotFoundError
from infrastructure.repositories.sqlite_settings_repository import SqliteSettingsRepository


class FailingSettingsRepository(SqliteSettingsRepository):
    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.fail_writes = False

    def set(self, key, value) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        super().set(key, value)


def _document(document_id: str, collection: str | None = "personal", session: str | None = None) -> Document:
    return Document(
        id=document_id,
        title=f"Title {document_id}",
        content="raw content that must not be persisted",
        collection=collection,
        session=session,
        created_at="2024-01-01T00:00:00+00:00",
        word_count=6,
        chunk_ids=[f"{document_id}_chunk_0"],
    )


class TestSqliteSettingsRepository(unittest.TestCase):
    def test_round_trips_json_values(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repository = SqliteSettingsRepository(Path(tmp) / "kb.db")

            self.assertEqual(repository.get("missing", {"default": True}), {"default": True})
            repository.set("knowledgeBase", {"enabled": True, "collections": ["personal"]})
            repository.set("knowledgeBase", {"enabled": False})
            self.assertEqual(repository.get("knowledgeBase"), {"enabled": False})
            repository.delete("knowledgeBase")
            self.assertIsNone(repository.get("knowledgeBase"))


class TestDocumentStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.settings = FailingSettingsRepository(Path(self._tmp.name) / "kb.db")
        self.store = DocumentStore(self.settings)
        self.store.init()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_permanent_documents_are_persisted_without_content(self) -> None:
        self.store.add(_document("a"))
        self.store.add(_document("b", collection="work"))

        groups = self.settings.get(DOCUMENTS_KEY)
        self.assertEqual(set(groups), {"personal", "work"})
        record = groups["personal"]["documents"][0]
        self.assertEqual(record["id"], "a")
        self.assertNotIn("content", record)
        self.assertEqual(record["chunkIds"], ["a_chunk_0"])

    def test_metadata_reloads_after_restart(self) -> None:
        self.store.add(_document("a"))

        reloaded = DocumentStore(self.settings)
        reloaded.init()

        document = reloaded.require("a")
        self.assertEqual(document.title, "Title a")
        self.assertEqual(document.content, "")
        self.assertEqual(document.collection, "personal")
        self.assertEqual(document.chunk_ids, ["a_chunk_0"])

    def test_session_documents_stay_in_memory(self) -> None:
        self.store.add(_document("s1", collection=None, session="abc"))

        self.assertEqual(self.store.get("s1").session, "abc")
        self.assertEqual(self.settings.get(DOCUMENTS_KEY), None)
        self.assertEqual([session.id for session in self.store.sessions()], ["abc"])
        self.assertEqual(self.store.list(), [])

    def test_removing_last_session_document_ends_the_session(self) -> None:
        self.store.add(_document("s1", collection=None, session="abc"))

        self.store.remove("s1")

        self.assertEqual(self.store.sessions(), [])
        self.assertIsNone(self.store.get("s1"))

    def test_clear_session(self) -> None:
        self.store.add(_document("s1", collection=None, session="abc"))
        self.store.add(_document("s2", collection=None, session="abc"))

        session = self.store.clear_session("abc")

        self.assertEqual([document.id for document in session.documents], ["s1", "s2"])
        with self.assertRaises(NotFoundError):
            self.store.clear_session("abc")

    def test_remove_unknown_document_raises(self) -> None:
        with self.assertRaises(NotFoundError):
            self.store.remove("missing")
        with self.assertRaises(NotFoundError):
            self.store.require("missing")

    def test_list_filters_by_collection(self) -> None:
        self.store.add(_document("a"))
        self.store.add(_document("b", collection="work"))

        self.assertEqual([document.id for document in self.store.list("work")], ["b"])
        self.assertEqual(len(self.store.list()), 2)

    def test_failed_persist_leaves_store_unchanged(self) -> None:
        self.settings.fail_writes = True

        with self.assertRaises(OSError):
            self.store.add(_document("a"))

        self.assertIsNone(self.store.get("a"))

    def test_allocated_ids_are_unique_hex(self) -> None:
        ids = {DocumentStore.allocate_id() for _ in range(50)}

        self.assertEqual(len(ids), 50)
        for document_id in ids:
            self.assertEqual(len(document_id), 32)
            int(document_id, 16)


if __name__ == "__main__":
    unittest.main()
