"""
FastAPI server exposing vocabulary search and breadcrumbs as JSON.

Run with ``vocab-browser api`` or ``uvicorn vocab_browser.api_server:app``.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .cache import FileCache, NullCache
from .config import Config
from .registry import VocabularyNotFoundError, VocabularyRegistry, load_registry
from .search import SearchOrchestrator
from .store import BackendError

logger = logging.getLogger(__name__)

# Set by the lifespan hook, or directly by an embedding application
registry: Optional[VocabularyRegistry] = None
orchestrator: Optional[SearchOrchestrator] = None
config: Optional[Config] = None


def build_orchestrator(cfg: Config) -> SearchOrchestrator:
    """Load the registry described by a configuration."""
    cache = FileCache(cfg.cache_dir, ttl=cfg.cache_ttl) if cfg.cache_enabled else NullCache()
    reg = load_registry(
        cfg.vocabularies_file,
        cache=cache,
        default_endpoint=cfg.sparql_endpoint,
        default_dialect=cfg.sparql_dialect,
        timeout=cfg.sparql_timeout,
    )
    return SearchOrchestrator(
        reg,
        search_limit=cfg.search_limit,
        breadcrumb_depth=cfg.breadcrumb_depth,
        info_limit=cfg.search_info_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and vocabularies on startup."""
    global registry, orchestrator, config

    if orchestrator is None:
        config = Config()
        orchestrator = build_orchestrator(config)
        registry = orchestrator.registry
        logger.info("Loaded %d vocabularies from %s", len(registry), config.vocabularies_file)

    yield


app = FastAPI(title="Vocabulary Browser", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


class VocabularyModel(BaseModel):
    id: str
    title: str
    uriSpace: str
    defaultLanguage: Optional[str] = None
    languages: list[str] = []


class SearchHitModel(BaseModel):
    uri: str
    vocab: Optional[str] = None
    prefLabel: Optional[str] = None
    altLabel: Optional[str] = None
    hiddenLabel: Optional[str] = None
    lang: Optional[str] = None
    localname: Optional[str] = None
    exvocab: Optional[str] = None


class ConceptInfoModel(BaseModel):
    uri: str
    types: list[str] = []
    prefLabels: dict[str, str] = {}
    altLabels: dict[str, list[str]] = {}
    broaders: list[str] = []
    narrowers: list[str] = []
    vocab: Optional[str] = None
    foundBy: Optional[str] = None
    foundByType: Optional[str] = None


class BreadcrumbModel(BaseModel):
    uri: str
    label: Optional[str] = None
    hiddenLabel: Optional[str] = None
    hideLabel: bool = False


class BreadcrumbsModel(BaseModel):
    paths: list[list[BreadcrumbModel]]
    combined: list[list[BreadcrumbModel]]


def _orchestrator() -> SearchOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Vocabularies not loaded")
    return orchestrator


def _run(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Call into the search core, mapping its errors to HTTP errors."""
    try:
        return func(*args, **kwargs)
    except VocabularyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except BackendError as e:
        logger.error("Backend query failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _vocabulary_model(voc) -> VocabularyModel:
    return VocabularyModel(
        id=voc.id,
        title=voc.title,
        uriSpace=voc.uri_space,
        defaultLanguage=voc.default_language,
        languages=list(voc.languages),
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "vocabularies": len(orchestrator.registry) if orchestrator else 0,
    }


@app.get("/api/vocabularies")
def list_vocabularies(categories: bool = False, lang: Optional[str] = None):
    """List vocabularies, optionally grouped by category title."""
    reg = _orchestrator().registry
    listing = reg.vocabulary_list(categories=categories, lang=lang)
    if categories:
        return {title: [_vocabulary_model(v) for v in vocs] for title, vocs in listing.items()}
    return [_vocabulary_model(v) for v in listing]


@app.get("/api/search", response_model=list[SearchHitModel])
def search(
    q: str,
    vocab: Optional[list[str]] = Query(None),
    lang: Optional[str] = None,
    type: Optional[str] = None,
    parent: Optional[str] = None,
    group: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=0),
    hidden: bool = True,
):
    """Search concepts in one vocabulary, several (repeat ``vocab``) or all."""
    hits = _run(
        _orchestrator().search_concepts,
        q, vocab, lang,
        type_=type, parent=parent, group=group, offset=offset, limit=limit, hidden=hidden,
    )
    return [hit.to_dict() for hit in hits]


@app.get("/api/search/info", response_model=list[ConceptInfoModel])
def search_info(
    q: str,
    vocabs: Optional[str] = None,
    lang: Optional[str] = None,
    ui_lang: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=0),
):
    """Search concepts and return their details. ``vocabs`` is space separated.

    Without ``limit`` the configured ``search.info_limit`` applies.
    """
    vocids = vocabs.split() if vocabs else None
    infos = _run(
        _orchestrator().search_concepts_and_info,
        q, vocids, lang, offset=offset, limit=limit, ui_lang=ui_lang,
    )
    return [info.to_dict() for info in infos]


@app.get("/api/{vocid}/breadcrumbs", response_model=BreadcrumbsModel)
def breadcrumbs(vocid: str, uri: str, lang: Optional[str] = None):
    """Breadcrumb paths from the hierarchy roots to a concept."""
    crumbs = _run(_orchestrator().get_breadcrumbs, vocid, uri, lang)
    return crumbs.to_dict()
