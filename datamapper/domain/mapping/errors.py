"""
Exception taxonomy for the mapping pipeline.

Only ``PipelineFatalError`` escapes a run. Collection-level errors are caught
by the orchestrator and recorded on the collection's result.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for mapping pipeline failures."""


class PipelineFatalError(PipelineError):
    """Raised when a run cannot proceed at all."""


class StoreUnavailableError(PipelineFatalError):
    """A backing store could not be reached at the start of a run."""

    def __init__(self, store: str, message: Optional[str] = None):
        self.store = store
        self.message = message or f"The {store} store is unreachable."
        super().__init__(self.message)


class NoCollectionsError(PipelineFatalError):
    """The tenant owns no collections to process."""

    def __init__(self, tenant_id: str, message: Optional[str] = None):
        self.tenant_id = tenant_id
        self.message = message or f"No collections found for tenant: {tenant_id}"
        super().__init__(self.message)


class CollectionError(PipelineError):
    """A single collection failed; the run continues with the next one."""

    def __init__(self, collection: str, message: str):
        self.collection = collection
        self.message = message
        super().__init__(message)


class EmptyCollectionError(CollectionError):
    """The collection holds no documents and is skipped."""

    def __init__(self, collection: str):
        super().__init__(collection, f"No data found in collection: {collection}")


class DocumentStoreError(PipelineError):
    """A read against the document store failed."""
