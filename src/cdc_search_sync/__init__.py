"""Kafka change-stream to search index synchronization."""

__version__ = "0.1.0"
