"""
Per-node storage: numeric buffers with a full-precision and a quantized view,
and the mutex guarding each node.

A buffer is allocated once as float32. Its quantized ("narrow") view is an
explicit `ndarray.view` of the same memory reinterpreted as 16-bit integers
and cut to the same element count, so both views alias one allocation and
report the same length. Which view is meaningful is fixed for the whole run
by the game's compression flag; asking for the other one is an error.

Quantized encoding of a float vector v:
    scale  = max |v|                       (signed)  or  max v  (unsigned)
    narrow = round(v * MAX_NARROW / scale)
    v     ~= narrow * scale / MAX_NARROW
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np

from .base import PreconditionError


I16_MAX = float(np.iinfo(np.int16).max)   # 32767
U16_MAX = float(np.iinfo(np.uint16).max)  # 65535


class NodeMutex:
    """
    Exclusive, non-reentrant lock owned by a single node.

    Re-acquiring the lock from the thread that already holds it raises
    instead of deadlocking. Other threads block until it is released.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        me = threading.get_ident()
        if self._owner == me:
            raise PreconditionError("node lock is already held by this thread")
        with self._lock:
            self._owner = me
            try:
                yield
            finally:
                self._owner = None


class StorageView:
    """
    One numeric node buffer with a wide (float32) and a narrow view.

    Args:
        size: Number of elements (num_actions * num_hands)
        narrow_dtype: np.uint16 for strategies, np.int16 for regrets/values
        compressed: Selects the valid view for the lifetime of the buffer
    """

    def __init__(self, size: int, narrow_dtype, compressed: bool):
        narrow_dtype = np.dtype(narrow_dtype)
        if narrow_dtype not in (np.dtype(np.int16), np.dtype(np.uint16)):
            raise ValueError(f"Unsupported narrow dtype: {narrow_dtype}")

        self._wide = np.zeros(size, dtype=np.float32)
        self._narrow = self._wide.view(narrow_dtype)[:size]
        self.compressed = compressed
        self.scale = 0.0

    def __len__(self) -> int:
        return self._wide.shape[0]

    @property
    def narrow_dtype(self) -> np.dtype:
        return self._narrow.dtype

    @property
    def max_narrow(self) -> float:
        return U16_MAX if self._narrow.dtype == np.uint16 else I16_MAX

    @property
    def wide(self) -> np.ndarray:
        if self.compressed:
            raise PreconditionError("full-precision view requested with compression enabled")
        return self._wide

    @property
    def narrow(self) -> np.ndarray:
        if not self.compressed:
            raise PreconditionError("quantized view requested with compression disabled")
        return self._narrow

    def encode(self, values: np.ndarray) -> float:
        """Quantize `values` into the narrow view and store the new scale."""
        self.scale = encode_slice(self.narrow, values)
        return self.scale

    def decode(self) -> np.ndarray:
        """Full-precision estimate of the narrow view."""
        return decode_slice(self.narrow, self.scale)


def encode_slice(dst: np.ndarray, values: np.ndarray) -> float:
    """
    Quantize `values` into the 16-bit array `dst` in place.

    Returns:
        The scale to store alongside `dst`
    """
    values = np.asarray(values, dtype=np.float32)
    if values.shape != dst.shape:
        raise PreconditionError(f"shape mismatch: {values.shape} vs {dst.shape}")

    if dst.dtype == np.uint16:
        scale = float(values.max(initial=0.0))
        max_narrow = U16_MAX
        low = 0.0
    elif dst.dtype == np.int16:
        scale = float(np.abs(values).max(initial=0.0))
        max_narrow = I16_MAX
        low = -I16_MAX
    else:
        raise PreconditionError(f"not a quantized buffer: {dst.dtype}")

    encoder = max_narrow / (scale if scale > 0.0 else 1.0)
    dst[:] = np.clip(np.rint(values * encoder), low, max_narrow).astype(dst.dtype)
    return scale


def decode_slice(src: np.ndarray, scale: float) -> np.ndarray:
    """Inverse of `encode_slice`: narrow * scale / max_narrow."""
    max_narrow = U16_MAX if src.dtype == np.uint16 else I16_MAX
    return src.astype(np.float32) * np.float32(scale / max_narrow)
