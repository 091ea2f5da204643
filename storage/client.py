"""
Storage Client
--------------
Explicitly constructed client over an ObjectStore, scoped to one bucket.

Rules:
- No global instance; construct one and pass it to whoever needs it
- Consumes the credential exactly once, at construction
- Every write is signed; the key is never logged or returned
- Guarded accessors raise SecurityViolation
"""

from typing import Any, Dict, List, Optional
import hashlib
import hmac

from core.errors import SecurityViolation, StorageError, VaultError
from infra.logging import get_logger
from security.secret_store import SecretStore
from .object_store import ObjectInfo, ObjectStore


class RequestSigner:
    """
    HMAC-SHA256 signer holding the consumed private key.

    The key sits in a bytearray that close() zeroes.
    """

    def __init__(self, private_key: str):
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"
        self._key = bytearray(private_key.encode("utf-8"))
        self.account_id = "0x" + hashlib.sha256(bytes(self._key)).hexdigest()[:40]

    @property
    def closed(self) -> bool:
        return not self._key

    def sign(self, payload: bytes) -> str:
        if self.closed:
            raise StorageError(self.account_id, "signer is closed")
        return hmac.new(bytes(self._key), payload, hashlib.sha256).hexdigest()

    def verify(self, payload: bytes, signature: str) -> bool:
        return hmac.compare_digest(self.sign(payload), signature)

    def close(self) -> None:
        for i in range(len(self._key)):
            self._key[i] = 0
        self._key = bytearray()

    def __repr__(self) -> str:
        return f"RequestSigner(account_id={self.account_id}, closed={self.closed})"


class StorageClient:
    """
    Bucket-scoped storage client.

    The bucket is resolved once via get_or_create_bucket(); until then
    the client is uninitialized and bucket operations fail.
    """

    def __init__(self, store: ObjectStore, signer: RequestSigner, network: str = "testnet"):
        self._store = store
        self._signer = signer
        self.network = network
        self._bucket: Optional[str] = None
        self._logger = get_logger(f"storage.client.{network}")

    @classmethod
    def from_secret_store(
        cls,
        secrets: SecretStore,
        store: ObjectStore,
        network: str = "testnet",
    ) -> "StorageClient":
        """Load (if needed) and consume the credential to build a client."""
        secrets.load()
        return cls(store, RequestSigner(secrets.consume()), network=network)

    @property
    def account_id(self) -> str:
        return self._signer.account_id

    @property
    def bucket(self) -> Optional[str]:
        return self._bucket

    @property
    def is_initialized(self) -> bool:
        return self._bucket is not None

    async def get_or_create_bucket(self, alias: str) -> str:
        """Find a bucket by alias, creating it when absent."""
        try:
            for info in await self._store.list_buckets():
                if info.alias == alias:
                    self._bucket = info.address
                    return info.address

            created = await self._store.create_bucket(alias)
        except VaultError:
            raise
        except Exception as e:
            self._logger.error(f"Error in get_or_create_bucket: {e}")
            raise StorageError(alias, f"failed to resolve bucket: {e}") from e

        if not created or not created.address:
            self._logger.error(f"Failed to create new bucket with alias: {alias}")
            raise StorageError(alias, "failed to create bucket")

        self._logger.info(f"Created bucket {created.address} for alias {alias}")
        self._bucket = created.address
        return created.address

    def _require_bucket(self, identifier: str) -> str:
        if self._bucket is None:
            raise StorageError(identifier, "no bucket resolved; call get_or_create_bucket()")
        return self._bucket

    async def get_object(self, key: str) -> Optional[bytes]:
        bucket = self._require_bucket(key)
        try:
            return await self._store.get(bucket, key)
        except VaultError:
            raise
        except Exception as e:
            self._logger.error(f"Error getting object {key}: {e}")
            raise StorageError(key, f"get failed: {e}") from e

    async def put_object(
        self,
        key: str,
        data: bytes,
        overwrite: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ObjectInfo:
        bucket = self._require_bucket(key)
        signed = dict(metadata or {})
        signed["signer"] = self._signer.account_id
        signed["signature"] = self._signer.sign(key.encode("utf-8") + b"\n" + data)
        try:
            return await self._store.put(bucket, key, data, overwrite=overwrite, metadata=signed)
        except VaultError:
            raise
        except Exception as e:
            self._logger.error(f"Error adding object {key}: {e}")
            raise StorageError(key, f"put failed: {e}") from e

    async def list_objects(self) -> List[ObjectInfo]:
        bucket = self._require_bucket("bucket")
        try:
            return await self._store.list(bucket)
        except VaultError:
            raise
        except Exception as e:
            self._logger.error(f"Error listing bucket objects: {e}")
            raise StorageError(bucket, f"list failed: {e}") from e

    def verify_object(self, key: str, data: bytes, metadata: Dict[str, Any]) -> bool:
        """Check that an object was written by this client's key."""
        signature = metadata.get("signature")
        if not signature:
            return False
        return self._signer.verify(key.encode("utf-8") + b"\n" + data, signature)

    def close(self) -> None:
        self._signer.close()

    # Guarded accessors

    def get_private_key(self) -> str:
        raise SecurityViolation(
            "credential",
            "get_private_key() is designed to prevent accidental exposure of private keys",
        )

    def get_environment_variables(self) -> Dict[str, str]:
        raise SecurityViolation(
            "credential",
            "get_environment_variables() is designed to prevent accidental exposure "
            "of sensitive environment variables",
        )

    def __repr__(self) -> str:
        return f"StorageClient(network={self.network}, bucket={self._bucket})"
