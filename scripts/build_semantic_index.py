"""Build the semantic (dense) vector index used by hybrid retrieval.

Reads a JSON-lines judgment dump and writes an index directory with:
  - embeddings.npy   (float32, [N, D], L2-normalised)
  - segments.jsonl   (one chunk metadata object per row)
  - index_meta.json  (model, dimension, count, embeddings hash)

CLI:
  python scripts/build_semantic_index.py \
      --input data/judgments.jsonl \
      --out data/semantic_index \
      --model all-MiniLM-L6-v2 \
      --batch-size 64

Point SEMANTIC_INDEX_DIR at the output directory and set HYBRID_RETRIEVAL=1.
Requires the ``semantic`` extra (sentence-transformers).
"""
from __future__ import annotations

import argparse
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from precedent_finder import config  # noqa: E402
from precedent_finder.retrieval.index_builder import build_index, read_jsonl  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description='Build semantic embedding index for precedent search.')
    parser.add_argument('--input', required=True, help='JSON-lines judgment dump')
    parser.add_argument('--out', default=config.SEMANTIC_INDEX_DIR or os.path.join('data', 'semantic_index'), help='Output index directory')
    parser.add_argument('--model', default=config.EMBEDDING_MODEL_NAME, help='SentenceTransformer model name (default: EMBEDDING_MODEL_NAME)')
    parser.add_argument('--batch-size', type=int, default=64, help='Encoding batch size (default: 64)')
    parser.add_argument('--device', default=None, help='Device: cpu|cuda (default: auto)')
    args = parser.parse_args()

    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as e:
        raise SystemExit("sentence-transformers package required. Install via pip install '.[semantic]'") from e
    model = SentenceTransformer(args.model, device=args.device)

    def encode(texts):
        return model.encode(list(texts), batch_size=args.batch_size, convert_to_numpy=True,
                            normalize_embeddings=True, show_progress_bar=False)

    index = build_index(read_jsonl(args.input), encode, batch_size=args.batch_size)
    meta = index.save(args.out, model_name=args.model)
    print(f"[semantic-index] Saved {meta['count']} embeddings of dim {meta['dimension']} to {args.out}")


if __name__ == '__main__':
    main()
