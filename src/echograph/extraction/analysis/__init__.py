# ABOUTME: DSPy-backed Extraction Service and Embedding Service implementations
# ABOUTME: One DSPy module per response schema plus an embedder wrapper

from .embeddings import DSPyEmbeddingService
from .service import DSPyExtractionService, configure_language_model

__all__ = ["DSPyEmbeddingService", "DSPyExtractionService", "configure_language_model"]
