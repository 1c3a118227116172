import logging
from typing import List

from datamapper.domain.mapping.errors import NoCollectionsError
from datamapper.domain.mapping.models import LogLevel
from datamapper.domain.mapping.progress import ProgressBus
from datamapper.integrations.document_store import DocumentStore

logger = logging.getLogger(__name__)


def discover_collections(store: DocumentStore, tenant_id: str, bus: ProgressBus) -> List[str]:
    """List the tenant's collections in processing order; raises NoCollectionsError when there are none."""
    collections = store.list_collections(tenant_id)
    if not collections:
        bus.log(LogLevel.ERROR, f"No collections found for tenant {tenant_id}", {"tenantId": tenant_id})
        raise NoCollectionsError(tenant_id)

    bus.log(
        LogLevel.SUCCESS,
        f"Found {len(collections)} collections to process",
        {"collections": collections},
    )
    return collections
