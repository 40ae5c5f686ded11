from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.models import DecisionWeights


class Settings(BaseSettings):
    # Embedding provider (any OpenAI-compatible /v1/embeddings endpoint)
    embedding_base_url: str = "http://localhost:11434/v1/embeddings"
    embedding_model: str = "nomic-embed-text"
    embedding_api_key: Optional[SecretStr] = None
    embedding_timeout: float = 60.0
    embedding_send_dimensions: bool = False

    # Vector store
    store_type: str = "memory"
    database_url: str = "sqlite+aiosqlite:///./data/rag_ranker.db"
    default_dim: int = 768
    batch_size: int = 10
    max_concurrent: int = 5

    # Auto-chunking of oversized documents
    auto_chunk: bool = True
    auto_chunk_threshold: int = 10_000
    chunk_size: int = 1_000
    chunk_overlap: int = 100

    # Retrieval / ranking
    retriever_k: int = 3
    max_history_size: int = 100
    enable_learning: bool = True
    decision_weights: DecisionWeights = DecisionWeights()

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="RAG_RANKER_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


settings = Settings()
