import logging
import os
import os.path as osp

from ..exceptions import FileErrorPfsError, NotFoundPfsError, OutOfMemoryPfsError

logger = logging.getLogger(__name__)

_SIZE_UNITS = ('KiB', 'MiB', 'GiB')

STDIN_INITIAL_CAPACITY = 512
STDIN_CHUNK_SIZE = 1024


def format_size_human(num_bytes):
    """Format a size the way the listing prints it, with binary units.

    Sizes below 1024 are printed as a six-wide byte count. Larger sizes are divided by 1024 until
    they drop below it, and printed with one decimal taken from the remainder of the last division.
    Anything that needs four or more divisions is printed in TiB.

        >>> format_size_human(1023)
        '  1023 B  '
        >>> format_size_human(1536)
        '   1.5 KiB'
    """
    remainder = 0
    divisions = 0
    while num_bytes >= 1024:
        remainder = num_bytes % 1024
        num_bytes //= 1024
        divisions += 1

    if divisions == 0:
        return f'{num_bytes:6d} B  '

    unit = _SIZE_UNITS[divisions - 1] if divisions <= len(_SIZE_UNITS) else 'TiB'
    return f'{num_bytes:4d}.{(remainder * 10) // 1024:1d} {unit}'


def filename_from_path(path):
    """Last segment of a path, splitting on both '/' and '\\'."""
    return path.replace('\\', '/').rpartition('/')[2]


def display(text):
    """Printable form of a name or path.

    Bytes that were not valid UTF-8 on disk come back from the OS as surrogate escapes; they are
    shown as backslash escapes so that printing never fails.
    """
    try:
        raw = text.encode('utf-8', 'surrogateescape')
    except UnicodeEncodeError:
        return text.encode('utf-8', 'backslashreplace').decode('utf-8')
    return raw.decode('utf-8', 'backslashreplace')


def compression_ratio(total_size, total_size_stored):
    """Percentage of space saved by compression; 0 for an archive with no data."""
    if total_size == 0:
        return 0.0
    return 100.0 - (total_size_stored / total_size) * 100.0


def exists(path):
    """True if any filesystem entry occupies ``path``."""
    return osp.lexists(os.fspath(path))


def read_file(path):
    """Read a whole source file into memory.

    Raises:
        NotFoundPfsError: If the file does not exist.
        FileErrorPfsError: If the file is empty or cannot be read.
        OutOfMemoryPfsError: If the file does not fit in memory.
    """
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        raise NotFoundPfsError(path)
    except MemoryError:
        raise OutOfMemoryPfsError(path)
    except OSError as e:
        raise FileErrorPfsError(path, e.strerror) from e

    if not data:
        raise FileErrorPfsError(path, 'empty file')
    return data


def read_stream(stream, initial_capacity=STDIN_INITIAL_CAPACITY, chunk_size=STDIN_CHUNK_SIZE):
    """Read a binary stream until end-of-stream into a growing buffer.

    The buffer starts at ``initial_capacity`` bytes and doubles whenever fewer than
    ``chunk_size`` bytes of headroom remain. A read that returns no data without signalling the
    end of the stream (a non-blocking stream with nothing available) is an error.

    Returns:
        The bytes read.

    Raises:
        FileErrorPfsError: If a read fails.
        OutOfMemoryPfsError: If the buffer cannot grow.
    """
    buffer = bytearray()
    capacity = initial_capacity
    length = 0
    try:
        buffer.extend(bytes(capacity))
        while True:
            if length + chunk_size > capacity:
                buffer.extend(bytes(capacity))
                capacity *= 2
            with memoryview(buffer) as view, view[length : length + chunk_size] as window:
                n = stream.readinto(window)
            if n is None:
                raise FileErrorPfsError('<stdin>', 'no data available')
            if n == 0:
                break
            length += n
    except MemoryError:
        raise OutOfMemoryPfsError('<stdin>')
    except OSError as e:
        raise FileErrorPfsError('<stdin>', e.strerror) from e

    logger.debug('Read %d bytes from stream, buffer capacity %d', length, capacity)
    del buffer[length:]
    return bytes(buffer)
