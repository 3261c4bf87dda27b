import logging
import sys

from ..core.archive import PfsArchive
from ..exceptions import (
    AlreadyExistsPfsError,
    CompressionPfsError,
    CorruptedPfsError,
    FileErrorPfsError,
    NotFoundPfsError,
    OutOfMemoryPfsError,
    PfsError,
)
from ..util import misc
from .options import Option

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

USAGE = """\
Usage: pfs [OPTIONS] [FILE]

  -l, --list           List the names of all files contained in [FILE]
  -s, --sizes          Show sizes in bytes for all printed files
  -h, --human          Use human-readable values for file sizes (e.g. KiB, MiB)
  -e, --extract <name> Extract <name> into the current working directory
  -o, --output <name>  Write the contents of <name> to stdout
  -r, --remove <name>  Remove <name> from [FILE]
  -i, --insert <path>  Insert the file from <path> into [FILE]
  -w, --write <name>   Read from stdin to insert a file with <name> into [FILE]
  -c, --create <path>  Create a new, empty PFS archive at <path>
      --help           Display this dialog
"""

# =============================================================================
# Error sentences, one table per operation
# =============================================================================

OPEN_ERRORS = {
    NotFoundPfsError: "no file found at '{path}'",
    OutOfMemoryPfsError: "out of memory while opening '{path}'",
    FileErrorPfsError: "read operation failed for '{path}'",
    CorruptedPfsError: "file is not a valid PFS archive: '{path}'",
    CompressionPfsError: "decompression failure while reading '{path}'",
}

READ_ERRORS = {
    NotFoundPfsError: "could not find '{name}' in '{path}'",
    OutOfMemoryPfsError: "out of memory while extracting '{name}'",
    CompressionPfsError: "failure while decompressing '{name}'",
}

SAVE_ERRORS = {
    OutOfMemoryPfsError: "out of memory while writing '{path}'",
    FileErrorPfsError: "write operation failed for file '{path}'",
    CompressionPfsError: "compression failure while writing '{path}'",
}

REMOVE_ERRORS = {
    NotFoundPfsError: "no file '{name}' in '{path}'",
}

INSERT_ERRORS = {
    OutOfMemoryPfsError: "out of memory while inserting '{name}'",
    CompressionPfsError: "compression failed while inserting '{name}'",
}

STDIN_ERRORS = {
    OutOfMemoryPfsError: 'out of memory while reading from stdin',
    FileErrorPfsError: 'failure while reading from stdin',
}

CREATE_ERRORS = {
    AlreadyExistsPfsError: "a file already exists at '{path}'",
    OutOfMemoryPfsError: "out of memory while creating '{path}'",
}

UNKNOWN_FAILURE = 'unknown failure code'
UNKNOWN_ERROR = 'unknown error code'


def report_error(error, table, default=UNKNOWN_ERROR, **fields):
    """Print the sentence for ``error`` from ``table`` on stderr and return the failure status."""
    template = table.get(type(error), default)
    message = template.format(**{key: misc.display(value) for key, value in fields.items()})
    print(f'Error: {message}', file=sys.stderr)
    logger.debug('%s: %s', type(error).__name__, error)
    return EXIT_FAILURE


def print_usage():
    print(USAGE, end='')


def open_archive(path, **kwargs):
    """Open the archive at ``path``, reporting failures. Returns None if it cannot be opened."""
    try:
        return PfsArchive.open(path, **kwargs)
    except PfsError as e:
        report_error(e, OPEN_ERRORS, UNKNOWN_FAILURE, path=path)
        return None


# =============================================================================
# Reporting modes
# =============================================================================


def list_entries(pfs, show_sizes=False, show_human=False):
    i = 0
    while True:
        name = pfs.entry_name(i)
        if name is None:
            break
        size = pfs.entry_size(i)
        name = misc.display(name)
        if show_human:
            print(f'{misc.format_size_human(size)} {name}')
        elif show_sizes:
            print(f'{size:10d} {name}')
        else:
            print(name)
        i += 1
    return EXIT_SUCCESS


def default_info(pfs, path):
    """Print the archive name, its entry count and how much compression saves overall."""
    total = 0
    total_stored = 0
    count = pfs.entry_count()
    for i in range(count):
        total += pfs.entry_size(i)
        total_stored += pfs.entry_size_stored(i)

    name = misc.display(misc.filename_from_path(path))
    print(name)
    print('-' * len(name))
    print(f'File count: {count}')
    print(f'Compression ratio: {misc.compression_ratio(total, total_stored):.1f}%')
    return EXIT_SUCCESS


# =============================================================================
# Reading entries out
# =============================================================================


def extract_file(pfs, name, path):
    try:
        data = pfs.read(name)
    except PfsError as e:
        return report_error(e, READ_ERRORS, UNKNOWN_FAILURE, name=name, path=path)

    try:
        f = open(name, 'wb')
    except OSError:
        print(f"Error: could not open '{misc.display(name)}' for writing", file=sys.stderr)
        return EXIT_FAILURE

    with f:
        try:
            f.write(data)
        except OSError:
            print(f"Error: write failure for '{misc.display(name)}'", file=sys.stderr)
            return EXIT_FAILURE

    print(f"Extracted '{misc.display(name)}'")
    return EXIT_SUCCESS


def extract(pfs, parsed, path):
    for name in parsed.values(Option.EXTRACT):
        rc = extract_file(pfs, name, path)
        if rc:
            return rc
    return EXIT_SUCCESS


def output_file(pfs, name, path, stream=None):
    if stream is None:
        stream = sys.stdout.buffer
    try:
        data = pfs.read(name)
    except PfsError as e:
        return report_error(e, READ_ERRORS, UNKNOWN_FAILURE, name=name, path=path)

    try:
        stream.write(data)
        stream.flush()
    except OSError:
        print(f"Error: write failure for '{misc.display(name)}'", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_SUCCESS


def output(pfs, parsed, path):
    name = parsed.first(Option.OUTPUT)
    if name is None:
        return EXIT_SUCCESS
    return output_file(pfs, name, path)


# =============================================================================
# Modifying the archive
# =============================================================================


def save(pfs, path):
    try:
        pfs.persist(path)
    except PfsError as e:
        return report_error(e, SAVE_ERRORS, path=path)
    print(f"Saved '{misc.display(path)}'")
    return EXIT_SUCCESS


def remove_entry(pfs, name, path):
    try:
        pfs.delete(name)
    except PfsError as e:
        return report_error(e, REMOVE_ERRORS, name=name, path=path)
    print(f"Removing '{misc.display(name)}'")
    return EXIT_SUCCESS


def remove(pfs, parsed, path):
    """Remove every ``-r`` name in order, stopping at the first failure.

    The archive is saved if at least one removal went through, also when a later one failed.
    """
    count = 0
    rc = EXIT_SUCCESS
    for name in parsed.values(Option.REMOVE):
        rc = remove_entry(pfs, name, path)
        if rc:
            break
        count += 1
    return _save_if_modified(pfs, path, count, rc)


def insert_data(pfs, name, data):
    try:
        pfs.insert(name, data)
    except PfsError as e:
        return report_error(e, INSERT_ERRORS, name=name)
    print(f"Inserting '{misc.display(name)}'")
    return EXIT_SUCCESS


def insert_single(pfs, filepath):
    try:
        data = misc.read_file(filepath)
    except PfsError as e:
        return report_error(e, OPEN_ERRORS, UNKNOWN_FAILURE, path=filepath)
    return insert_data(pfs, misc.filename_from_path(filepath), data)


def insert(pfs, parsed, path):
    """Insert every ``-i`` file in order, stopping at the first failure.

    The archive is saved if at least one insertion went through, also when a later one failed.
    """
    count = 0
    rc = EXIT_SUCCESS
    for filepath in parsed.values(Option.INSERT):
        rc = insert_single(pfs, filepath)
        if rc:
            break
        count += 1
    return _save_if_modified(pfs, path, count, rc)


def _save_if_modified(pfs, path, count, rc):
    # Changes made before a failure are not rolled back; they are saved too.
    if count:
        save_rc = save(pfs, path)
        rc = rc or save_rc
    return rc


def write_stdin(pfs, name, path, stream=None):
    if stream is None:
        stream = sys.stdin.buffer
    try:
        data = misc.read_stream(stream)
    except PfsError as e:
        return report_error(e, STDIN_ERRORS)

    if not data:
        return EXIT_SUCCESS
    rc = insert_data(pfs, name, data)
    if rc:
        return rc
    return save(pfs, path)


def write(pfs, parsed, path):
    name = parsed.first(Option.WRITE)
    if name is None:
        return EXIT_SUCCESS
    return write_stdin(pfs, name, path)


def create_file(path, **kwargs):
    """Create a new, empty archive at ``path``; an existing file there is never overwritten."""
    try:
        if misc.exists(path):
            raise AlreadyExistsPfsError(path)
        pfs = PfsArchive.create_new(**kwargs)
    except PfsError as e:
        return report_error(e, CREATE_ERRORS, path=path)

    with pfs:
        return save(pfs, path)


def create(parsed, **kwargs):
    for path in parsed.values(Option.CREATE):
        rc = create_file(path, **kwargs)
        if rc:
            return rc
    return EXIT_SUCCESS
