"""Payload encoding for PFS entries: zlib compression with CRC32C integrity checks."""

import zlib

import crc32c as crc32c_lib

from ..core.types import METHOD_STORED, METHOD_ZLIB
from ..exceptions import CompressionPfsError, OutOfMemoryPfsError

__all__ = [
    'checksum',
    'encode',
    'decode',
    'DEFAULT_COMPRESSION_LEVEL',
]

DEFAULT_COMPRESSION_LEVEL = 6


def checksum(data) -> int:
    """CRC32C of a bytes-like object."""
    return crc32c_lib.crc32c(data)


def encode(name, data, level=DEFAULT_COMPRESSION_LEVEL):
    """Encode the contents of an entry for storage.

    The payload is compressed with zlib unless that does not make it smaller, in which case it is
    stored as-is.

    Returns:
        A tuple ``(method, payload, crc32c)``.

    Raises:
        CompressionPfsError: If zlib fails.
        OutOfMemoryPfsError: If the compressor cannot allocate its buffers.
    """
    crc = checksum(data)
    if level == 0 or not data:
        return METHOD_STORED, bytes(data), crc

    try:
        compressed = zlib.compress(data, level)
    except MemoryError:
        raise OutOfMemoryPfsError(name)
    except zlib.error as e:
        raise CompressionPfsError(name, str(e)) from e

    if len(compressed) >= len(data):
        return METHOD_STORED, bytes(data), crc
    return METHOD_ZLIB, compressed, crc


def decode(name, method, payload, size, crc32c=None):
    """Decode a stored payload back to the original contents and verify it.

    Raises:
        CompressionPfsError: If decompression fails, or the result does not match the expected
            size or CRC32C checksum.
        OutOfMemoryPfsError: If the decompressor cannot allocate its buffers.
    """
    if method == METHOD_STORED:
        data = bytes(payload)
    elif method == METHOD_ZLIB:
        try:
            data = zlib.decompress(payload, bufsize=max(size, 1))
        except MemoryError:
            raise OutOfMemoryPfsError(name)
        except zlib.error as e:
            raise CompressionPfsError(name, str(e)) from e
    else:
        raise CompressionPfsError(name, f'unknown method {method}')

    if len(data) != size:
        raise CompressionPfsError(name, f'expected {size} bytes, got {len(data)}')
    if crc32c is not None:
        actual = checksum(data)
        if actual != crc32c:
            raise CompressionPfsError(
                name, f'CRC32C mismatch, expected {crc32c}, got {actual}'
            )
    return data
