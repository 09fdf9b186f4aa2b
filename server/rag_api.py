from fastapi import FastAPI, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import datetime, logging, os

from config.database import DatabaseConfig
from config.settings import Settings
from indexer.embeddings import EmbeddingConfigError, EmbeddingError
from observability.logging import setup_logging
from observability.metrics import setup_prometheus_metrics
from .answering import AnswerGeneratorMissing
from .services import Services, build_services

logger = logging.getLogger(__name__)

app = FastAPI(title="pagewise RAG API", version="0.1.0")
setup_prometheus_metrics(app)

# Global service container
services: Optional[Services] = None


def load_settings() -> Settings:
    """Settings from PAGEWISE_CONFIG (YAML) or the environment."""
    config_path = os.getenv("PAGEWISE_CONFIG")
    if config_path:
        return Settings.from_yaml(config_path)
    return Settings.from_env()


@app.on_event("startup")
async def startup_event():
    """Build services and start the crawl worker scheduler."""
    global services

    setup_logging(
        level=os.getenv("PAGEWISE_LOG_LEVEL", "INFO"),
        use_json=os.getenv("PAGEWISE_LOG_JSON", "").lower() in ("1", "true", "yes"),
        log_file=os.getenv("PAGEWISE_LOG_FILE"),
    )
    try:
        services = build_services(load_settings(), DatabaseConfig.from_env())
        if services.scheduler is not None:
            services.scheduler.start()
        logger.info("pagewise API started")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler and close the database."""
    global services
    if services is not None:
        services.close()
        services = None
        logger.info("pagewise API shut down")


def get_services() -> Services:
    """Dependency to get the service container."""
    if services is None:
        raise HTTPException(status_code=500, detail="Services not initialized")
    return services


class AskRequest(BaseModel):
    question: str
    top_k: Optional[int] = Field(default=None, ge=1, le=50)
    hints: Dict[str, Any] = Field(default_factory=dict)


class RetrieveRequest(BaseModel):
    question: str
    top_k: Optional[int] = Field(default=None, ge=1, le=50)
    hints: Dict[str, Any] = Field(default_factory=dict)


class IndexUrlRequest(BaseModel):
    url: str
    force: bool = False
    variants: List[str] = Field(default_factory=list)


class WorkRequest(BaseModel):
    batch_size: Optional[int] = Field(default=None, ge=1, le=100)


class DeleteDocumentRequest(BaseModel):
    url: str
    variants: List[str] = Field(default_factory=list)
    paths: List[str] = Field(default_factory=list)


class CachePurgeRequest(BaseModel):
    urls: List[str] = Field(default_factory=list)
    paths: List[str] = Field(default_factory=list)
    all: bool = False


def _embedding_failure(e: Exception) -> HTTPException:
    if isinstance(e, EmbeddingConfigError):
        return HTTPException(status_code=503, detail="Embedding backend not configured")
    return HTTPException(status_code=502, detail="Embedding request failed")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "pagewise RAG API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }


@app.get("/health")
def health():
    return {"ok": True, "time": datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")}


@app.post("/ask")
def ask(req: AskRequest, svc: Services = Depends(get_services)):
    """Answer a question from the cache or from retrieved context."""
    if not req.question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty")
    try:
        return svc.answers.answer(req.question, top_k=req.top_k, hints=req.hints).to_dict()
    except AnswerGeneratorMissing as e:
        raise HTTPException(status_code=503, detail=str(e))
    except EmbeddingError as e:
        logger.error(f"Ask failed: {e}")
        raise _embedding_failure(e)


@app.post("/retrieve")
def retrieve(req: RetrieveRequest, svc: Services = Depends(get_services)):
    """Return the assembled context and sources without generating an answer."""
    if not req.question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty")
    try:
        result = svc.retriever.retrieve(req.question, top_k=req.top_k, hints=req.hints)
    except EmbeddingError as e:
        logger.error(f"Retrieve failed: {e}")
        raise _embedding_failure(e)
    return {
        "context": result.context,
        "sources": [s.to_dict() for s in result.sources],
    }


@app.post("/index/sitemap")
def index_sitemap(svc: Services = Depends(get_services)):
    """Queue every new sitemap URL for background indexing."""
    report = svc.site_indexer.index_all()
    return {
        "ok": report.ok,
        "message": report.message,
        "queued": report.queued,
        "skipped": report.skipped,
    }


@app.post("/index/url")
def index_url(req: IndexUrlRequest, svc: Services = Depends(get_services)):
    """Reindex a single URL right away."""
    if not req.url.strip():
        raise HTTPException(status_code=400, detail="URL must not be empty")
    try:
        result = svc.site_indexer.index_single_url(req.url, force=req.force, known_variants=req.variants)
    except EmbeddingError as e:
        logger.error(f"Indexing {req.url} failed: {e}")
        raise _embedding_failure(e)

    status = {True: "indexed", None: "skipped", False: "failed"}[result]
    return {"url": req.url, "status": status}


@app.post("/index/work")
def index_work(req: WorkRequest, svc: Services = Depends(get_services)):
    """Process one batch of the crawl queue synchronously."""
    result = svc.site_indexer.work_batch(req.batch_size)
    return {
        "acquired": result.acquired,
        "processed": result.processed,
        "inserted": result.inserted,
        "skipped": result.skipped,
        "failed": result.failed,
        "remaining": result.remaining,
        "done": result.done,
    }


@app.delete("/index/document")
def delete_document(req: DeleteDocumentRequest, svc: Services = Depends(get_services)):
    """Remove a document and the cached answers citing it."""
    if not req.url.strip():
        raise HTTPException(status_code=400, detail="URL must not be empty")
    return svc.site_indexer.delete_document(req.url, req.variants, req.paths)


@app.get("/index/status")
def index_status(svc: Services = Depends(get_services)):
    return svc.site_indexer.status()


@app.post("/cache/purge")
def cache_purge(req: CachePurgeRequest, svc: Services = Depends(get_services)):
    """Purge cached answers by cited URL/path, or everything."""
    if req.all:
        return {"purged": svc.cache.delete_all()}
    if not req.urls and not req.paths:
        raise HTTPException(status_code=400, detail="Provide urls, paths or all=true")
    return {"purged": svc.cache.purge_by_source_urls(req.urls, req.paths)}
