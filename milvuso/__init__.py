"""Embedding-based recommendation toolkit: models, config, initialisers, optimisers, retrieval, metrics, validation and in-process services."""

__version__ = "0.1.0"