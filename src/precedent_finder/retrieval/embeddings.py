"""Query embedding collaborator (sentence-transformers, optional extra).

The model is loaded on first use and cached per process. A missing model name
or a missing ``sentence-transformers`` install raises ConfigurationError, which
the hybrid layer treats as "semantic retrieval disabled".
"""
from __future__ import annotations
import logging
import threading
from typing import Any, List, Optional

from precedent_finder import config
from precedent_finder.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SentenceEmbedder:
    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name if model_name is not None else config.EMBEDDING_MODEL_NAME
        self._model: Any = None
        self._lock = threading.Lock()

    def _load(self):
        if not self.model_name:
            raise ConfigurationError("EMBEDDING_MODEL_NAME is not set")
        with self._lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as e:
                    raise ConfigurationError("sentence-transformers is not installed") from e
                self._model = SentenceTransformer(self.model_name)
                logger.info("loaded embedding model %s", self.model_name)
        return self._model

    def embed(self, text: str) -> List[float]:
        model = self._load()
        vec = model.encode([text], normalize_embeddings=True)
        return [float(v) for v in vec[0]]


__all__ = ['SentenceEmbedder']
