"""
Collaborator factories for the API.

Each factory builds (once) the store or provider a router needs. Tests swap
them through ``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import Depends

from datamapper.core.config import settings
from datamapper.db.relational_store import RelationalStore, SqlAlchemyRelationalStore
from datamapper.db.session import get_engine
from datamapper.domain.mapping.orchestrator import PipelineOrchestrator
from datamapper.domain.mapping.resolver import MappingResolver
from datamapper.integrations.document_store import DocumentStore, MongoDocumentStore
from datamapper.integrations.llm import AnthropicModelProvider, ModelProvider

_document_store: Optional[MongoDocumentStore] = None
_relational_store: Optional[SqlAlchemyRelationalStore] = None
_model_provider: Optional[ModelProvider] = None


def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        _document_store = MongoDocumentStore()
    return _document_store


def get_relational_store() -> RelationalStore:
    global _relational_store
    if _relational_store is None:
        _relational_store = SqlAlchemyRelationalStore(get_engine())
    return _relational_store


def get_model_provider() -> ModelProvider:
    global _model_provider
    if _model_provider is None:
        _model_provider = AnthropicModelProvider()
    return _model_provider


def get_orchestrator(
    document_store: DocumentStore = Depends(get_document_store),
    relational_store: RelationalStore = Depends(get_relational_store),
    provider: ModelProvider = Depends(get_model_provider),
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        document_store=document_store,
        relational_store=relational_store,
        resolver=MappingResolver(provider),
        batch_size=settings.pipeline_batch_size,
    )


def close_document_store() -> None:
    """Release the shared document-store client, if one was opened."""
    global _document_store
    if _document_store is not None:
        _document_store.close()
        _document_store = None
