"""Fixed-width binary encoding of embedding vectors.

A vector of ``D`` floats is stored as ``4 * D`` bytes of little-endian
IEEE-754 single-precision values. There is no header: the length alone
identifies a valid blob.
"""

import numpy as np

from ..errors import DimensionMismatch, MalformedBlob
from ..models import EmbeddingVector

_DTYPE = np.dtype("<f4")


class VectorCodec:
    """Converts between float vectors and their storage blobs."""

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension

    @property
    def blob_size(self) -> int:
        return self.dimension * _DTYPE.itemsize

    def encode(self, vector) -> bytes:
        arr = np.asarray(vector, dtype=_DTYPE)
        if arr.ndim != 1 or arr.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, int(arr.size))
        return arr.tobytes()

    def decode(self, blob: bytes) -> EmbeddingVector:
        return self.decode_array(blob).tolist()

    def decode_array(self, blob: bytes) -> np.ndarray:
        """Decode into a read-only float32 array without going through Python floats."""
        if len(blob) % _DTYPE.itemsize != 0:
            raise MalformedBlob(f"Blob length {len(blob)} is not a multiple of {_DTYPE.itemsize}")
        if len(blob) != self.blob_size:
            raise MalformedBlob(
                f"Blob length {len(blob)} does not match dimension {self.dimension} "
                f"({self.blob_size} bytes expected)"
            )
        return np.frombuffer(blob, dtype=_DTYPE)
