from typing import Optional

METHOD_STORED = 0  #: Payload is kept as-is
METHOD_ZLIB = 1  #: Payload is a zlib stream

MAX_ENTRY_SIZE = (1 << 32) - 1  #: Sizes are stored as unsigned 32-bit integers
MAX_NAME_LENGTH = (1 << 16) - 1  #: Name lengths are stored as unsigned 16-bit integers


class PfsEntryInfo:
    """
    Describes one entry of a PFS archive: its name, how its payload is stored and its sizes.

    Args:
        name: name of the entry inside the archive
        method: storage method of the payload, :data:`METHOD_STORED` or :data:`METHOD_ZLIB`
        size: size of the decoded contents in bytes
        size_stored: size of the payload as stored in the archive, in bytes
        crc32c: CRC32C checksum of the decoded contents
    """

    __slots__ = ('name', 'method', 'size', 'size_stored', 'crc32c')

    def __init__(
        self,
        name: str,
        method: int = METHOD_STORED,
        size: int = 0,
        size_stored: int = 0,
        crc32c: Optional[int] = None,
    ):
        self.name = name
        self.method = method
        self.size = size
        self.size_stored = size_stored
        self.crc32c = crc32c

    @property
    def compressed(self) -> bool:
        """True if the payload is stored compressed."""
        return self.method != METHOD_STORED

    def __repr__(self):
        return (
            f'PfsEntryInfo(name={self.name!r}, method={self.method}, size={self.size}, '
            f'size_stored={self.size_stored}, crc32c={self.crc32c})'
        )

    def __eq__(self, other):
        if not isinstance(other, PfsEntryInfo):
            return NotImplemented
        return all(getattr(self, k) == getattr(other, k) for k in self.__slots__)
