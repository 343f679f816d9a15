# Storage module
"""Persistence: local key/value blobs and the hosted relational store."""

from tamic.storage.storage import IStorageService, JsonFileStorage
from tamic.storage.datastore import (
    ConstraintViolation,
    DataStoreError,
    IDataStore,
    InMemoryDataStore,
    RestDataStore,
    UnitOfWork,
)

__all__ = [
    "IStorageService",
    "JsonFileStorage",
    "ConstraintViolation",
    "DataStoreError",
    "IDataStore",
    "InMemoryDataStore",
    "RestDataStore",
    "UnitOfWork",
]
