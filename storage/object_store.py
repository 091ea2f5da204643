"""
Object Store
------------
Bucket-scoped key/value storage consumed by the tool registry.

Interface:
    get(bucket, key) -> bytes | None
    put(bucket, key, data, overwrite, metadata) -> ObjectInfo
    list(bucket) -> [ObjectInfo]
    create_bucket(alias) -> BucketInfo
    list_buckets() -> [BucketInfo]

Every call is awaitable; these are the only suspension points besides
the template executor's HTTP call. Writes are single calls with fully
serialized payloads, so a cancelled write leaves the old value or none.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote
import json
import os
import uuid

from core.errors import ObjectExists, StorageError
from infra.logging import get_logger


@dataclass
class BucketInfo:
    """A bucket and its alias."""
    address: str
    alias: Optional[str] = None


@dataclass
class ObjectInfo:
    """A stored object's key and metadata (never its body)."""
    key: str
    size: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


def new_bucket_address() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]


class ObjectStore(ABC):
    """Abstract bucket-scoped key/value store."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        """Return the object body, or None when absent."""

    @abstractmethod
    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        overwrite: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ObjectInfo:
        """Store an object. Raises ObjectExists when present and not overwriting."""

    @abstractmethod
    async def list(self, bucket: str) -> List[ObjectInfo]:
        """List every object in a bucket."""

    @abstractmethod
    async def create_bucket(self, alias: Optional[str] = None) -> BucketInfo:
        """Create a new bucket."""

    @abstractmethod
    async def list_buckets(self) -> List[BucketInfo]:
        """List all buckets."""


class InMemoryObjectStore(ObjectStore):
    """Process-local store. Last write wins per key."""

    def __init__(self):
        self._buckets: Dict[str, BucketInfo] = {}
        self._objects: Dict[str, Dict[str, ObjectInfo]] = {}
        self._data: Dict[str, Dict[str, bytes]] = {}

    def _require(self, bucket: str) -> None:
        if bucket not in self._buckets:
            raise StorageError(bucket, "bucket does not exist")

    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        self._require(bucket)
        return self._data[bucket].get(key)

    async def put(self, bucket, key, data, overwrite=False, metadata=None) -> ObjectInfo:
        self._require(bucket)
        if key in self._data[bucket] and not overwrite:
            raise ObjectExists(key)
        info = ObjectInfo(key=key, size=len(data), metadata=dict(metadata or {}))
        self._data[bucket][key] = bytes(data)
        self._objects[bucket][key] = info
        return info

    async def list(self, bucket: str) -> List[ObjectInfo]:
        self._require(bucket)
        return list(self._objects[bucket].values())

    async def create_bucket(self, alias: Optional[str] = None) -> BucketInfo:
        info = BucketInfo(address=new_bucket_address(), alias=alias)
        self._buckets[info.address] = info
        self._objects[info.address] = {}
        self._data[info.address] = {}
        return info

    async def list_buckets(self) -> List[BucketInfo]:
        return list(self._buckets.values())


class DirectoryObjectStore(ObjectStore):
    """
    Filesystem-backed store for local deployments.

    Layout:
        <root>/buckets.json                      address -> alias
        <root>/<address>/objects/<file name>     object body
        <root>/<address>/meta/<file name>.json   object metadata

    The file name is the percent-encoded key with a leading "." escaped,
    so every key maps to a visible file and bodies never share a
    directory with metadata. Writes go to a dot-prefixed temporary file
    and are renamed into place.

    Disk I/O runs inline on the caller's thread: local reads and writes
    are short, and nothing here hands work to an executor.
    """

    OBJECTS_DIR = "objects"
    META_DIR = "meta"

    def __init__(self, root: str):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._index = self._root / "buckets.json"
        self._logger = get_logger("storage.directory")

    @staticmethod
    def file_name(key: str) -> str:
        if not key:
            raise StorageError(key, "object key must not be empty")
        name = quote(key, safe="")
        if name.startswith("."):
            name = "%2E" + name[1:]
        return name

    def _read_index(self) -> Dict[str, Optional[str]]:
        if not self._index.exists():
            return {}
        with open(self._index, "r", encoding="utf-8") as f:
            return json.load(f)

    def _bucket_dirs(self, bucket: str) -> Tuple[Path, Path]:
        if bucket not in self._read_index():
            raise StorageError(bucket, "bucket does not exist")
        base = self._root / bucket
        return base / self.OBJECTS_DIR, base / self.META_DIR

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)

    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        objects, _ = self._bucket_dirs(bucket)
        path = objects / self.file_name(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    async def put(self, bucket, key, data, overwrite=False, metadata=None) -> ObjectInfo:
        objects, meta = self._bucket_dirs(bucket)
        name = self.file_name(key)
        path = objects / name
        if path.exists() and not overwrite:
            raise ObjectExists(key)
        info = ObjectInfo(key=key, size=len(data), metadata=dict(metadata or {}))
        self._write_atomic(meta / f"{name}.json", json.dumps(info.metadata).encode("utf-8"))
        self._write_atomic(path, bytes(data))
        return info

    async def list(self, bucket: str) -> List[ObjectInfo]:
        objects_dir, meta_dir = self._bucket_dirs(bucket)
        objects = []
        for path in sorted(objects_dir.iterdir()):
            if path.name.startswith("."):
                continue
            meta_path = meta_dir / f"{path.name}.json"
            metadata = json.loads(meta_path.read_text("utf-8")) if meta_path.exists() else {}
            objects.append(ObjectInfo(
                key=unquote(path.name), size=path.stat().st_size, metadata=metadata,
            ))
        return objects

    async def create_bucket(self, alias: Optional[str] = None) -> BucketInfo:
        index = self._read_index()
        info = BucketInfo(address=new_bucket_address(), alias=alias)
        index[info.address] = alias
        base = self._root / info.address
        (base / self.OBJECTS_DIR).mkdir(parents=True, exist_ok=True)
        (base / self.META_DIR).mkdir(parents=True, exist_ok=True)
        self._write_atomic(self._index, json.dumps(index, indent=2).encode("utf-8"))
        self._logger.info(f"Created bucket {info.address} (alias={alias})")
        return info

    async def list_buckets(self) -> List[BucketInfo]:
        return [BucketInfo(address=a, alias=alias) for a, alias in self._read_index().items()]
