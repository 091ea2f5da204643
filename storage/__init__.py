# Storage module - bucket-scoped object store and the credential-consuming client
# Construct a StorageClient explicitly; there is no shared instance

from .object_store import (
    ObjectStore, InMemoryObjectStore, DirectoryObjectStore, ObjectInfo, BucketInfo,
)
from .client import StorageClient, RequestSigner

__all__ = [
    "ObjectStore",
    "InMemoryObjectStore",
    "DirectoryObjectStore",
    "ObjectInfo",
    "BucketInfo",
    "StorageClient",
    "RequestSigner",
]
