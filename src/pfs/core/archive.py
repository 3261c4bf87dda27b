import logging
import os
import os.path as osp
import struct
import tempfile
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Optional, Union

from ..exceptions import (
    CompressionPfsError,
    CorruptedPfsError,
    FileErrorPfsError,
    NotFoundPfsError,
    OutOfMemoryPfsError,
    ReadOnlyPfsError,
)
from ..io import compression as pfs_compression
from .types import (
    MAX_ENTRY_SIZE,
    MAX_NAME_LENGTH,
    METHOD_STORED,
    METHOD_ZLIB,
    PfsEntryInfo,
)

logger = logging.getLogger(__name__)

MAGIC = b'PFS1'
_HEADER = struct.Struct('<4sI')
_NAME_LENGTH = struct.Struct('<H')
_RECORD = struct.Struct('<BIII')


def encode_name(name):
    """Encode an entry name for storage.

    Names taken from the filesystem may carry undecodable bytes as surrogate escapes; those are
    stored as the original bytes.

    Raises:
        FileErrorPfsError: If the name holds characters that have no byte representation.
    """
    try:
        return name.encode('utf-8', 'surrogateescape')
    except UnicodeEncodeError as e:
        raise FileErrorPfsError(name, 'name cannot be encoded') from e


def decode_name(name_bytes):
    return str(name_bytes, 'utf-8', 'surrogateescape')


def _target_mode(path):
    """Permission bits for a file written to ``path``: those of the existing file, else 0o666 minus
    the umask."""
    try:
        return os.stat(path).st_mode & 0o7777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class PfsArchive(AbstractContextManager):
    """In-memory representation of a PFS archive.

    A PFS archive is a single file holding an ordered list of named entries. Each entry payload is
    either stored as-is or compressed with zlib, and carries the CRC32C of its decoded contents.
    The whole archive is loaded into memory by :meth:`open` and written back by :meth:`persist`;
    nothing touches the disk in between.

    Entries are addressed by index (``0 .. entry_count() - 1``, in insertion order) for listing,
    and by name for reading, inserting and deleting.

    Args:
        compression_level: zlib level (0-9) used for newly inserted payloads. 0 stores everything
            uncompressed.
        readonly: If True, :meth:`insert`, :meth:`delete` and :meth:`persist` raise
            :class:`ReadOnlyPfsError` (a ``PermissionError``).

    Examples:
        >>> with PfsArchive.create_new() as pfs:
        ...     pfs.insert('hello.txt', b'Hello, world!')
        ...     pfs.persist('test.pfs')
        >>> with PfsArchive.open('test.pfs') as pfs:
        ...     pfs.read('hello.txt')
        b'Hello, world!'
    """

    def __init__(
        self,
        compression_level: int = pfs_compression.DEFAULT_COMPRESSION_LEVEL,
        readonly: bool = False,
    ):
        if not 0 <= compression_level <= 9:
            raise ValueError(f'compression_level must be between 0 and 9, got {compression_level}')
        self.compression_level = compression_level
        self.readonly = readonly
        self.path = None
        self._infos = []
        self._payloads = {}
        self._closed = False

    @classmethod
    def create_new(cls, **kwargs) -> 'PfsArchive':
        """Create a new, empty archive in memory.

        Raises:
            OutOfMemoryPfsError: If the archive structures cannot be allocated.
        """
        try:
            return cls(**kwargs)
        except MemoryError:
            raise OutOfMemoryPfsError()

    @classmethod
    def open(cls, path: Union[str, os.PathLike], **kwargs) -> 'PfsArchive':
        """Load an archive from disk.

        Args:
            path: path to the archive file
            **kwargs: passed on to the constructor

        Raises:
            NotFoundPfsError: If there is no file at ``path``.
            FileErrorPfsError: If the file cannot be read.
            CorruptedPfsError: If the file is not a well-formed PFS archive.
            OutOfMemoryPfsError: If the archive does not fit in memory.
        """
        path = os.fspath(path)
        try:
            with open(path, 'rb') as f:
                raw = f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise NotFoundPfsError(path)
        except MemoryError:
            raise OutOfMemoryPfsError(path)
        except OSError as e:
            raise FileErrorPfsError(path, e.strerror) from e

        pfs = cls(**kwargs)
        try:
            pfs._load(path, memoryview(raw))
        except MemoryError:
            raise OutOfMemoryPfsError(path)
        pfs.path = path
        logger.debug('Opened %s with %d entries', path, len(pfs._infos))
        return pfs

    def _load(self, path, raw):
        try:
            magic, count = _HEADER.unpack_from(raw, 0)
        except struct.error:
            raise CorruptedPfsError(path, 'truncated header')
        if magic != MAGIC:
            raise CorruptedPfsError(path, 'bad magic')

        pos = _HEADER.size
        for i in range(count):
            try:
                (name_length,) = _NAME_LENGTH.unpack_from(raw, pos)
                pos += _NAME_LENGTH.size
                name_bytes = raw[pos : pos + name_length]
                if len(name_bytes) != name_length:
                    raise CorruptedPfsError(path, f'truncated name of entry {i}')
                pos += name_length
                method, size, size_stored, crc = _RECORD.unpack_from(raw, pos)
                pos += _RECORD.size
            except struct.error:
                raise CorruptedPfsError(path, f'truncated record of entry {i}')

            name = decode_name(name_bytes)
            if method not in (METHOD_STORED, METHOD_ZLIB):
                raise CorruptedPfsError(path, f'entry {i} has unknown method {method}')
            if method == METHOD_STORED and size != size_stored:
                raise CorruptedPfsError(path, f'entry {i} has inconsistent sizes')
            if name in self._payloads:
                raise CorruptedPfsError(path, f'duplicate entry name {name!r}')

            payload = raw[pos : pos + size_stored]
            if len(payload) != size_stored:
                raise CorruptedPfsError(path, f'truncated payload of entry {i}')
            pos += size_stored

            self._infos.append(PfsEntryInfo(name, method, size, size_stored, crc))
            self._payloads[name] = bytes(payload)

        if pos != len(raw):
            raise CorruptedPfsError(path, f'{len(raw) - pos} trailing bytes')

    def close(self):
        """Release the archive. Calling it more than once is harmless."""
        if self._closed:
            return
        self._infos = []
        self._payloads = {}
        self._closed = True

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _check_writable(self):
        if self.readonly:
            raise ReadOnlyPfsError(self.path)

    # Index-based listing
    def entry_count(self) -> int:
        """Number of entries in the archive."""
        return len(self._infos)

    def entry_info(self, index: int) -> Optional[PfsEntryInfo]:
        """Metadata of the entry at ``index``, or None past the last index."""
        if index < 0 or index >= len(self._infos):
            return None
        return self._infos[index]

    def entry_name(self, index: int) -> Optional[str]:
        """Name of the entry at ``index``, or None past the last index."""
        info = self.entry_info(index)
        return None if info is None else info.name

    def entry_size(self, index: int) -> int:
        """Decoded size in bytes of the entry at ``index``; 0 past the last index."""
        info = self.entry_info(index)
        return 0 if info is None else info.size

    def entry_size_stored(self, index: int) -> int:
        """Stored (possibly compressed) size in bytes of the entry at ``index``; 0 past the last index."""
        info = self.entry_info(index)
        return 0 if info is None else info.size_stored

    def infos(self) -> Iterator[PfsEntryInfo]:
        """Iterate over the metadata of all entries, in index order."""
        return iter(list(self._infos))

    # Name-based access
    def _find(self, name):
        for i, info in enumerate(self._infos):
            if info.name == name:
                return i
        return None

    def read(self, name: str) -> bytes:
        """Decoded contents of the entry called ``name``.

        Raises:
            NotFoundPfsError: If there is no such entry.
            CompressionPfsError: If the payload cannot be decoded or fails its checksum.
            OutOfMemoryPfsError: If the decoded contents do not fit in memory.
        """
        i = self._find(name)
        if i is None:
            raise NotFoundPfsError(name)
        info = self._infos[i]
        try:
            return pfs_compression.decode(
                name, info.method, self._payloads[name], info.size, info.crc32c
            )
        except CompressionPfsError as e:
            logger.warning('Failed to decode %s: %s', name, e)
            raise

    def insert(self, name: str, data: bytes):
        """Add an entry, or replace the contents of an existing entry with the same name.

        A replaced entry keeps its index.

        Raises:
            ReadOnlyPfsError: If the archive was opened read-only.
            FileErrorPfsError: If the name cannot be stored as bytes.
            OutOfMemoryPfsError: If the data does not fit the format or in memory.
            CompressionPfsError: If compressing the data fails.
        """
        self._check_writable()
        name_bytes = encode_name(name)
        if len(data) > MAX_ENTRY_SIZE or len(name_bytes) > MAX_NAME_LENGTH:
            raise OutOfMemoryPfsError(name)

        method, payload, crc = pfs_compression.encode(name, data, self.compression_level)
        info = PfsEntryInfo(name, method, len(data), len(payload), crc)
        i = self._find(name)
        if i is None:
            self._infos.append(info)
        else:
            self._infos[i] = info
        self._payloads[name] = payload
        logger.debug(
            'Inserted %s (%d bytes, %d stored, method %d)', name, info.size, info.size_stored, method
        )

    def delete(self, name: str):
        """Remove the entry called ``name``.

        Raises:
            NotFoundPfsError: If there is no such entry.
        """
        self._check_writable()
        i = self._find(name)
        if i is None:
            raise NotFoundPfsError(name)
        del self._infos[i]
        del self._payloads[name]
        logger.debug('Deleted %s', name)

    def persist(self, path: Union[str, os.PathLike]):
        """Write the archive to ``path``, replacing any existing file atomically.

        Raises:
            FileErrorPfsError: If the file cannot be written.
            OutOfMemoryPfsError: If the serialized archive does not fit in memory.
        """
        self._check_writable()
        path = os.fspath(path)
        try:
            blob = self._serialize()
        except MemoryError:
            raise OutOfMemoryPfsError(path)

        directory = osp.dirname(osp.abspath(path))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f'.{osp.basename(path)}.', suffix='.tmp', dir=directory
            )
            with os.fdopen(fd, 'wb') as f:
                f.write(blob)
            os.chmod(tmp_path, _target_mode(path))
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None and osp.exists(tmp_path):
                os.remove(tmp_path)
            raise FileErrorPfsError(path, e.strerror) from e
        self.path = path
        logger.debug('Wrote %s (%d entries, %d bytes)', path, len(self._infos), len(blob))

    def _serialize(self) -> bytes:
        parts = [_HEADER.pack(MAGIC, len(self._infos))]
        for info in self._infos:
            name_bytes = encode_name(info.name)
            parts.append(_NAME_LENGTH.pack(len(name_bytes)))
            parts.append(name_bytes)
            parts.append(_RECORD.pack(info.method, info.size, info.size_stored, info.crc32c))
            parts.append(self._payloads[info.name])
        return b''.join(parts)

    # Dict-like conveniences
    def __len__(self):
        return len(self._infos)

    def __iter__(self) -> Iterator[str]:
        return iter([info.name for info in self._infos])

    def __contains__(self, name):
        return name in self._payloads

    @property
    def total_size(self) -> int:
        """Sum of the decoded sizes of all entries, in bytes."""
        return sum(info.size for info in self._infos)

    @property
    def total_size_stored(self) -> int:
        """Sum of the stored sizes of all entries, in bytes."""
        return sum(info.size_stored for info in self._infos)
