"""Runtime settings for pagewise.

All tunables of the indexing pipeline, the retriever and the answer cache
live in one immutable model so defaults are resolved once at the boundary.
"""

import os
import logging
from pathlib import Path
from typing import Dict, List, Optional, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from indexer.url_keys import sanitize_key

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_ANSWER = (
    "Deze informatie bestaat niet in onze huidige kennisbank. "
    "Probeer je vraag specifieker te stellen of gebruik andere trefwoorden."
)

# Ordered: the first synonym that matches wins.
DEFAULT_CATEGORY_SYNONYMS: Dict[str, str] = {
    "partner": "partners",
    "partners": "partners",
    "kenniscentrum": "kenniscentrum",
    "kennisbank": "kenniscentrum",
    "knowledge center": "kenniscentrum",
    "interview": "interviews",
    "interviews": "interviews",
    "nieuws": "nieuws",
    "news": "nieuws",
    "agenda": "agenda",
    "evenement": "agenda",
    "evenementen": "agenda",
    "magazine": "magazine",
    "case": "cases",
    "cases": "cases",
    "project": "projecten",
    "projecten": "projecten",
    "vacature": "vacatures",
    "vacatures": "vacatures",
}


class Settings(BaseModel):
    """Immutable configuration for indexing, retrieval and caching."""

    model_config = ConfigDict(frozen=True)

    # Site
    sitemap_url: str = Field(default="", description="Root sitemap index URL")
    skip_urls: List[str] = Field(default_factory=list, description="URLs never queued for indexing")
    verify_ssl: Optional[bool] = Field(default=None, description="TLS verification; None = auto")
    user_agent: str = Field(default="pagewise/0.1 (+sitemap indexer)")
    request_timeout: float = Field(default=30.0)

    # Embeddings
    embedding_provider: str = Field(default="openai", description="openai or local")
    api_base: str = Field(default="https://api.openai.com/v1")
    api_key: str = Field(default="")
    embed_model: str = Field(default="text-embedding-3-small")
    embed_timeout: float = Field(default=45.0)

    # Indexing
    chunk_chars: int = Field(default=1200)
    batch_size: int = Field(default=8, description="URLs per worker run")
    crawl_throttle_seconds: float = Field(default=0.15)
    worker_reschedule_seconds: int = Field(default=60)
    lease_ttl_seconds: int = Field(default=300)

    # Retrieval
    top_k: int = Field(default=6)
    cosine_min: float = Field(default=0.18)
    snippet_chars: int = Field(default=650)
    category_order: List[str] = Field(default_factory=list, description="Category priority, highest first")
    category_synonyms: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CATEGORY_SYNONYMS))
    default_category: str = Field(default="nieuws")

    # Answers and cache
    cache_enabled: bool = Field(default=True)
    fallback_answer: str = Field(default=DEFAULT_FALLBACK_ANSWER)

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """Create settings from PAGEWISE_* environment variables."""
        env = os.environ
        values: Dict[str, Any] = {}

        simple = {
            "sitemap_url": "PAGEWISE_SITEMAP_URL",
            "api_base": "PAGEWISE_API_BASE",
            "api_key": "PAGEWISE_API_KEY",
            "embed_model": "PAGEWISE_EMBED_MODEL",
            "embedding_provider": "PAGEWISE_EMBEDDING_PROVIDER",
            "default_category": "PAGEWISE_DEFAULT_CATEGORY",
            "fallback_answer": "PAGEWISE_FALLBACK_ANSWER",
        }
        for field, var in simple.items():
            if env.get(var):
                values[field] = env[var]

        if env.get("PAGEWISE_TOP_K"):
            values["top_k"] = int(env["PAGEWISE_TOP_K"])
        if env.get("PAGEWISE_CHUNK_CHARS"):
            values["chunk_chars"] = int(env["PAGEWISE_CHUNK_CHARS"])
        if env.get("PAGEWISE_BATCH_SIZE"):
            values["batch_size"] = int(env["PAGEWISE_BATCH_SIZE"])
        if env.get("PAGEWISE_COSINE_MIN"):
            values["cosine_min"] = float(env["PAGEWISE_COSINE_MIN"])
        if env.get("PAGEWISE_CATEGORY_ORDER"):
            values["category_order"] = _split_list(env["PAGEWISE_CATEGORY_ORDER"])
        if env.get("PAGEWISE_SKIP_URLS"):
            values["skip_urls"] = _split_list(env["PAGEWISE_SKIP_URLS"])
        if env.get("PAGEWISE_VERIFY_SSL"):
            values["verify_ssl"] = env["PAGEWISE_VERIFY_SSL"].lower() in ("1", "true", "yes")
        if env.get("PAGEWISE_CACHE_ENABLED"):
            values["cache_enabled"] = env["PAGEWISE_CACHE_ENABLED"].lower() in ("1", "true", "yes")

        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: str) -> "Settings":
        """Load settings from a YAML file; environment variables win."""
        config_path = Path(path)
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Settings file {config_path} must contain a mapping")

        logger.info(f"Loaded settings from {config_path}")
        env_settings = cls.from_env()
        env_overrides = {
            name: getattr(env_settings, name)
            for name in env_settings.model_fields_set
        }
        return cls(**{**data, **env_overrides})

    def category_priority(self) -> List[str]:
        """Sanitized, de-duplicated category order."""
        order: List[str] = []
        for slug in self.category_order:
            slug = sanitize_key(slug)
            if slug and slug not in order:
                order.append(slug)
        return order


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]
