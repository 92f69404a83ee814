"""
Document store boundary used by the database health probe.

The monitoring engine only needs to write a small canary document and read it
back. DocumentStore describes that surface; MotorDocumentStore implements it
over MongoDB with the Motor async driver. The Motor client is bound to the
event loop it was created on, so it is created lazily and recreated when the
probe runs on a different loop.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from opsmonitor.monitoring.exceptions import DocumentStoreError
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)


class DocumentStore(ABC):
    """Minimal async document store interface."""

    @abstractmethod
    async def write(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        """Create or replace a document."""

    @abstractmethod
    async def read(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return the document or None."""

    async def close(self) -> None:
        return None


class MotorDocumentStore(DocumentStore):
    """
    MongoDB document store on Motor.

    Args:
        uri: MongoDB connection string
        database_name: Target database
        server_selection_timeout_ms: Driver server selection timeout
    """

    def __init__(
        self,
        uri: str,
        database_name: str,
        server_selection_timeout_ms: int = 500
    ):
        self.uri = uri
        self.database_name = database_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client: Optional[AsyncIOMotorClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_database(self):
        loop = asyncio.get_running_loop()
        if self._client is None or self._client_loop is not loop:
            if self._client is not None:
                self._client.close()
            self._client = AsyncIOMotorClient(
                self.uri,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms
            )
            self._client_loop = loop
            logger.debug("Motor client created", database=self.database_name)
        return self._client[self.database_name]

    async def write(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        try:
            await self._get_database()[collection].replace_one(
                {'_id': document_id},
                {**document, '_id': document_id},
                upsert=True
            )
        except Exception as e:
            raise DocumentStoreError(
                f"Write to {collection}/{document_id} failed: {e}",
                operation='write',
                original_error=e
            ) from e

    async def read(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._get_database()[collection].find_one({'_id': document_id})
        except Exception as e:
            raise DocumentStoreError(
                f"Read of {collection}/{document_id} failed: {e}",
                operation='read',
                original_error=e
            ) from e

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._client_loop = None


__all__ = ['DocumentStore', 'MotorDocumentStore']
