"""Data access boundary for the monitoring engine."""

from opsmonitor.data.document_store import DocumentStore, MotorDocumentStore

__all__ = ['DocumentStore', 'MotorDocumentStore']
