"""
Shared dependencies for FastAPI routers.

Provides dependency injection functions for request query options.
"""

from typing import Optional

from fastapi import Query

from .query_options import QueryOptions


async def get_query_options(
    filter: Optional[str] = Query(None, alias="$filter", description="Raw filter expression"),
    apply: Optional[str] = Query(None, alias="$apply", description="Raw apply expression"),
) -> QueryOptions:
    """
    Build query options from the ``$filter`` and ``$apply`` parameters.

    Used as ``Depends(get_query_options)``; handlers call ``get_id()`` on the
    result.
    """
    return QueryOptions(filter=filter, apply=apply)
