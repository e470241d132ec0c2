import base64
import dataclasses
import importlib.util
import tempfile
import unittest

_API_DEPENDENCIES = ("fastapi", "httpx", "sentence_transformers", "hnswlib", "faiss", "fitz", "docx")

FOX = "The quick brown fox jumps over the lazy dog"


@unittest.skipIf(
    any(importlib.util.find_spec(name) is None for name in _API_DEPENDENCIES),
    "API dependencies not installed",
)
class TestKnowledgeBaseApi(unittest.TestCase):
    def setUp(self) -> None:
        from fastapi.testclient import TestClient

        from infrastructure.config import ContainerConfig, build_default_container
        from ui.api.main import create_app

        self._tmp = tempfile.TemporaryDirectory()
        self.container = build_default_container(
            ContainerConfig(data_root=self._tmp.name, embedder="bag-of-words", vector_backend="sqlite")
        )
        self.client_cm = TestClient(create_app(self.container))
        self.client = self.client_cm.__enter__()

    def tearDown(self) -> None:
        self.client_cm.__exit__(None, None, None)
        self._tmp.cleanup()

    def test_document_lifecycle(self) -> None:
        response = self.client.post("/documents", json={"content": FOX, "metadata": {"title": "Fox"}})
        self.assertEqual(response.status_code, 200)
        document_id = response.json()["id"]

        found = self.client.post("/search", json={"query": "fox jumping"}).json()
        self.assertEqual([result["document_id"] for result in found["results"]], [document_id])
        self.assertEqual(found["results"][0]["chunks"][0]["content"], FOX)

        document = self.client.get(f"/documents/{document_id}").json()
        self.assertEqual(document["title"], "Fox")
        self.assertEqual(document["chunk_ids"], [f"{document_id}_chunk_0"])

        self.assertEqual(self.client.delete(f"/documents/{document_id}").status_code, 204)
        self.assertEqual(self.client.get(f"/documents/{document_id}").status_code, 404)
        self.assertEqual(self.client.delete(f"/documents/{document_id}").status_code, 404)

    def test_error_statuses(self) -> None:
        unsupported = self.client.post(
            "/files",
            json={"data": base64.b64encode(b"MZ").decode("ascii"), "file_type": "exe"},
        )
        self.assertEqual(unsupported.status_code, 422)
        self.assertEqual(self.client.post("/files", json={"data": "***", "file_type": "txt"}).status_code, 400)
        self.assertEqual(self.client.post("/search", json={"query": "   "}).json()["results"], [])
        self.assertEqual(self.client.post("/search", json={"query": "fox", "limit": "many"}).status_code, 422)
        self.assertEqual(self.client.post("/import", json={"documents": "nope"}).status_code, 400)
        self.assertEqual(self.client.delete("/sessions/unknown").status_code, 404)

    def test_file_upload(self) -> None:
        data = base64.b64encode(FOX.encode("utf-8")).decode("ascii")

        response = self.client.post(
            "/files", json={"data": data, "file_type": "txt", "metadata": {"fileName": "fox.txt"}}
        )

        self.assertEqual(response.status_code, 200)
        document = self.client.get(f"/documents/{response.json()['id']}").json()
        self.assertEqual(document["title"], "fox.txt")
        self.assertEqual(document["source"], "upload")

    def test_collections(self) -> None:
        created = self.client.post("/collections", json={"name": "projects", "metadata": {"icon": "folder"}})
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["metadata"], {"icon": "folder"})
        self.assertEqual(self.client.post("/collections", json={"name": "projects"}).status_code, 400)

        names = [info["name"] for info in self.client.get("/collections").json()]
        self.assertIn("projects", names)
        self.assertIn("personal", names)

        self.assertEqual(self.client.delete("/collections/projects").status_code, 204)
        self.assertEqual(self.client.delete("/collections/projects").status_code, 404)
        self.assertEqual(self.client.delete("/collections/personal").status_code, 400)

    def test_session_search_and_clear(self) -> None:
        self.client.post("/documents", json={"content": "Budget review", "metadata": {"session": "s1"}})

        plain = self.client.post("/search", json={"query": "budget review"}).json()
        scoped = self.client.post("/search", json={"query": "budget review", "session_id": "s1"}).json()

        self.assertEqual(plain["results"], [])
        self.assertEqual(len(scoped["results"]), 1)
        cleared = self.client.delete("/sessions/s1").json()
        self.assertEqual(cleared, {"session_id": "s1", "removed": 1})

    def test_stats_export_and_import(self) -> None:
        self.client.post("/documents", json={"content": FOX, "metadata": {"collection": "work"}})

        stats = self.client.get("/stats").json()
        self.assertEqual(stats["totalDocuments"], 1)
        self.assertEqual(stats["collections"]["work"]["documents"], 1)

        exported = self.client.get("/export", params={"collection": "work"}).json()
        self.assertEqual([record["content"] for record in exported["documents"]], [FOX])

        imported = self.client.post("/import", json=exported).json()
        self.assertEqual(len(imported["imported"]), 1)
        self.assertEqual(self.client.get("/stats").json()["totalDocuments"], 2)

    def test_settings(self) -> None:
        self.assertEqual(self.client.get("/settings").json()["settings"]["contextMode"], "augment")

        updated = self.client.patch("/settings", json={"settings": {"contextMode": "only"}})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["settings"]["contextMode"], "only")
        self.assertEqual(self.client.patch("/settings", json={"settings": {"limit": -1}}).status_code, 400)

    def test_ask_uses_completer(self) -> None:
        from fastapi.testclient import TestClient

        from application.knowledge_base import KnowledgeBaseManager
        from domain.interfaces import TextCompleter
        from ui.api.main import create_app

        class EchoCompleter(TextCompleter):
            def complete(self, prompt, context, mode):
                return f"{mode}: {prompt}"

        kb = self.container.knowledge_base
        container = dataclasses.replace(
            self.container,
            knowledge_base=KnowledgeBaseManager(
                registry=kb.registry,
                document_store=kb.document_store,
                splitter=kb.splitter,
                embedder=kb.embedder,
                parser=kb.parser,
                settings=self.container.settings,
                completer=EchoCompleter(),
            ),
        )
        # Both managers share the registry and store, so only one may own their lifecycle.
        self.client_cm.__exit__(None, None, None)
        self.client_cm = TestClient(create_app(container))
        self.client = self.client_cm.__enter__()
        self.client.post("/documents", json={"content": FOX})

        answer = self.client.post("/ask", json={"query": "fox jumping", "mode": "priority"}).json()

        self.assertEqual(answer["answer"], "priority: fox jumping")
        self.assertEqual(answer["mode"], "priority")
        self.assertEqual(len(answer["sources"]), 1)
        self.assertEqual(self.client.post("/ask", json={"query": "fox", "mode": "loud"}).status_code, 400)


if __name__ == "__main__":
    unittest.main()
