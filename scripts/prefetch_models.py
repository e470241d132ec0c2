"""Download the embedding model and save it locally for offline use."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from sentence_transformers import SentenceTransformer

from infrastructure.embedding.sentence_transformers_embedder import SentenceTransformersConfig
from ui.logging_utils import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = SentenceTransformersConfig().model_name


def prefetch_embedding_model(model_name: str, output_dir: Path) -> Path:
    model = SentenceTransformer(model_name)
    target_dir = output_dir / model_name
    target_dir.parent.mkdir(parents=True, exist_ok=True)
    model.save(str(target_dir))
    return target_dir


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output-dir",
        default="models",
        help="Directory the models are saved to; point KB_MODELS_DIR here (default: models)",
    )
    parser.add_argument(
        "--embedding-model",
        action="append",
        dest="embedding_models",
        help=f"Hugging Face model id (default: {DEFAULT_EMBEDDING_MODEL}). May be repeated.",
    )
    return parser.parse_args()


def main() -> None:
    setup_logging()
    args = parse_args()
    output_dir = Path(args.output_dir).expanduser()
    embedding_models = tuple(args.embedding_models or (DEFAULT_EMBEDDING_MODEL,))

    logger.info("Saving models to %s", output_dir)
    for model_name in embedding_models:
        saved_path = prefetch_embedding_model(model_name, output_dir)
        logger.info("embedding: %s -> %s", model_name, saved_path)
    print(f"Saved {len(embedding_models)} model(s) to {output_dir}")


if __name__ == "__main__":
    main()
