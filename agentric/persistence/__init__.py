"""Workflow persistence backends and the URL-based factory."""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..config import AgentricConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import WorkflowRecord
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

logger = logging.getLogger(__name__)

SQLITE_SCHEME = "sqlite://"


def get_repository(
    database_url: Optional[str] = None, config: Optional[AgentricConfig] = None
) -> WorkflowRepository:
    """Open the repository addressed by ``database_url``.

    The URL falls back to ``AGENTRIC_DATABASE_URL``, then ``DATABASE_URL``,
    then ``database_url`` in the configuration. With none of them set,
    state lives in memory for the life of the process. Only
    ``sqlite://<path>`` URLs are understood.
    """
    if database_url is None:
        database_url = (
            os.getenv("AGENTRIC_DATABASE_URL")
            or os.getenv("DATABASE_URL")
            or (config or load_config()).database_url
        )

    if not database_url:
        logger.debug("No database configured, keeping workflow state in memory")
        return InMemoryWorkflowRepository()

    scheme, sep, path = database_url.partition(SQLITE_SCHEME)
    if scheme or not sep:
        raise ValueError(f"Unsupported database backend: {database_url}")
    logger.debug(f"Opening SQLite workflow store at {path}")
    return SQLiteWorkflowRepository(path)


__all__ = [
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "WorkflowRecord",
    "WorkflowRepository",
    "get_repository",
]
