"""
Secure Buffer
-------------
Best-effort page locking and zeroing for the credential's backing storage.

Trust Boundary:
- Locking and zeroing are attempted, NOT guaranteed
- Where libc mlock/munlock are unavailable the buffer is still
  overwritten on release, but it may have been swapped out
- Python str objects handed to the consumer are immutable and cannot
  be scrubbed; that copy is the consumer's responsibility

These are residual risks, not violations: single consumption and the
explicit scrub still hold at the API level.
"""

from typing import Optional
import ctypes
import ctypes.util

from infra.logging import get_logger

_logger = get_logger("security.memory")


def _load_libc() -> Optional[ctypes.CDLL]:
    name = ctypes.util.find_library("c")
    if not name:
        return None
    try:
        return ctypes.CDLL(name, use_errno=True)
    except OSError:
        return None


_LIBC = _load_libc()


def page_locking_available() -> bool:
    return _LIBC is not None and hasattr(_LIBC, "mlock")


class SecureBuffer:
    """
    Mutable byte storage that is locked while held and zeroed on wipe().

    Never exposes its bytes except through reveal(), which the
    SecretStore calls exactly once per load.
    """

    def __init__(self, data: bytes):
        self._buffer = bytearray(data)
        self._locked = False
        self._lock()

    def _address(self) -> Optional[int]:
        if not self._buffer:
            return None
        holder = (ctypes.c_char * len(self._buffer)).from_buffer(self._buffer)
        return ctypes.addressof(holder)

    def _lock(self) -> None:
        if not page_locking_available():
            _logger.debug("mlock unavailable; backing storage is not page-locked")
            return
        address = self._address()
        if address is None:
            return
        if _LIBC.mlock(ctypes.c_void_p(address), ctypes.c_size_t(len(self._buffer))) == 0:
            self._locked = True
        else:
            _logger.debug(f"mlock failed (errno={ctypes.get_errno()}); continuing unlocked")

    def _unlock(self) -> None:
        if not self._locked:
            return
        address = self._address()
        if address is not None:
            _LIBC.munlock(ctypes.c_void_p(address), ctypes.c_size_t(len(self._buffer)))
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def empty(self) -> bool:
        return not self._buffer

    def reveal(self) -> str:
        return self._buffer.decode("utf-8")

    def wipe(self) -> None:
        """Zero the storage, unlock it, and release it."""
        length = len(self._buffer)
        if length:
            address = self._address()
            if address is not None:
                ctypes.memset(address, 0, length)
            for i in range(length):
                self._buffer[i] = 0
        self._unlock()
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return f"SecureBuffer(len={len(self._buffer)}, locked={self._locked})"
