import importlib.util
import math
import os
import unittest
from unittest import mock

from domain.similarity import cosine_similarity
from infrastructure.embedding.bag_of_words_embedder import BagOfWordsEmbedder


class TestCosineSimilarity(unittest.TestCase):
    def test_identical_and_orthogonal_vectors(self) -> None:
        self.assertAlmostEqual(cosine_similarity([1.0, 2.0], [2.0, 4.0]), 1.0)
        self.assertAlmostEqual(cosine_similarity([1.0, 0.0], [0.0, 3.0]), 0.0)

    def test_zero_norm_scores_zero(self) -> None:
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 1.0]), 0.0)

    def test_dimension_mismatch_raises(self) -> None:
        with self.assertRaises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestBagOfWordsEmbedder(unittest.TestCase):
    def setUp(self) -> None:
        self.embedder = BagOfWordsEmbedder()

    def test_vectors_have_declared_dimension_and_unit_norm(self) -> None:
        vectors = self.embedder.embed_texts(["The quick brown fox", "Budget review"])

        self.assertEqual(len(vectors), 2)
        for vector in vectors:
            self.assertEqual(len(vector), self.embedder.dimension)
            self.assertAlmostEqual(math.sqrt(sum(value * value for value in vector)), 1.0)

    def test_embedding_is_deterministic(self) -> None:
        first = self.embedder.embed("Quarterly revenue report")
        second = BagOfWordsEmbedder().embed("Quarterly revenue report")

        self.assertEqual(first, second)

    def test_stop_words_only_text_is_a_zero_vector(self) -> None:
        vector = self.embedder.embed("the and of")

        self.assertEqual(set(vector), {0.0})

    def test_tokenize_removes_stop_words_and_stems(self) -> None:
        self.assertEqual(self.embedder.tokenize("The cats were jumping"), ["cat", "jump"])

    def test_related_text_scores_above_unrelated_text(self) -> None:
        document = self.embedder.embed("The quick brown fox jumps over the lazy dog")
        query = self.embedder.embed("fox jumping")
        unrelated = self.embedder.embed("Quarterly revenue report")

        self.assertGreater(self.embedder.cosine_similarity(query, document), 0.5)
        self.assertAlmostEqual(self.embedder.cosine_similarity(query, unrelated), 0.0)

    def test_truncate_cuts_at_word_boundary(self) -> None:
        embedder = BagOfWordsEmbedder(max_input_length=10)

        self.assertEqual(embedder.truncate("hello world again"), "hello")
        self.assertEqual(embedder.truncate("short"), "short")
        self.assertEqual(embedder.truncate("abcdefghijklmnop"), "abcdefghij")


class _FakeEncodings:
    def __init__(self, rows):
        self._rows = rows

    def tolist(self):
        return self._rows


class TestSentenceTransformersEmbedder(unittest.TestCase):
    def setUp(self) -> None:
        if importlib.util.find_spec("sentence_transformers") is None:
            self.skipTest("sentence_transformers not installed")
        from infrastructure.embedding import sentence_transformers_embedder  # noqa: PLC0415

        self.module = sentence_transformers_embedder

    def _fake_model(self, dimension: int = 384) -> mock.MagicMock:
        model = mock.MagicMock()
        model.get_sentence_embedding_dimension.return_value = dimension
        model.encode.side_effect = lambda texts, **kwargs: _FakeEncodings([[0.5] * dimension for _ in texts])
        return model

    def test_loads_lazily_and_truncates_inputs(self) -> None:
        model = self._fake_model()
        config = self.module.SentenceTransformersConfig(max_input_length=12)
        with mock.patch.object(self.module, "SentenceTransformer", return_value=model) as factory:
            embedder = self.module.SentenceTransformersEmbedder(config)
            factory.assert_not_called()

            vectors = embedder.embed_texts(["first chunk of text", "second"])

        factory.assert_called_once()
        self.assertEqual(len(vectors), 2)
        self.assertEqual(len(vectors[0]), 384)
        encoded = model.encode.call_args.args[0]
        self.assertEqual(encoded, ["first chunk", "second"])
        self.assertEqual(model.encode.call_args.kwargs["batch_size"], 10)

    def test_dimension_mismatch_fails_initialization(self) -> None:
        with mock.patch.object(self.module, "SentenceTransformer", return_value=self._fake_model(768)):
            embedder = self.module.SentenceTransformersEmbedder()
            with self.assertRaises(ValueError):
                embedder.initialize()

    def test_real_model_optional(self) -> None:
        if not os.getenv("KB_ENABLE_ST"):
            self.skipTest("KB_ENABLE_ST is not set.")
        embedder = self.module.SentenceTransformersEmbedder()
        vector = embedder.embed("knowledge base search")
        self.assertEqual(len(vector), embedder.dimension)


if __name__ == "__main__":
    unittest.main()
