import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from rag_ranker.api.dependencies import get_vector_store
from rag_ranker.config import settings
from rag_ranker.core.errors import BatchEmbeddingError, EmbeddingError

EXTENSIONS = (".txt", ".md")


def load_documents(root: Path):
    documents = []
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in EXTENSIONS:
            continue
        text = path.read_text(encoding="utf-8", errors="replace").strip()
        if not text:
            print(f"Skipping empty file: {path}")
            continue
        documents.append({
            "id": str(path.relative_to(root)),
            "text": text,
            "meta": {"source": path.name, "path": str(path)},
        })
    return documents


def print_progress(current: int, total: int) -> None:
    print(f"Embedded {current}/{total}")


async def main(directory: str) -> int:
    root = Path(directory)
    if not root.is_dir():
        print(f"Not a directory: {root}")
        return 1

    print(f"Loading .txt/.md files from {root}...")
    documents = load_documents(root)
    if not documents:
        print("No documents to ingest.")
        return 0

    print(f"Found {len(documents)} files. Creating embeddings (this may take time)...")
    if settings.store_type.lower() != "sqlite":
        print("Warning: in-memory store; set RAG_RANKER_STORE_TYPE=sqlite to persist.")
    store = get_vector_store()
    try:
        await store.add_documents(documents, on_progress=print_progress)
        stats = await store.get_stats()
        print(f"Store now holds {stats['document_count']} documents.")
    except BatchEmbeddingError as e:
        print(f"{e.inserted} stored, {len(e.failed_ids)} failed: {', '.join(e.failed_ids)}")
        return 2
    except EmbeddingError as e:
        print(f"Embedding failed: {e.message} ({e.suggestion})")
        return 2
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            await close()

    print("Done!")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest a directory of text files")
    parser.add_argument("directory", help="Directory containing .txt/.md files")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.directory)))
