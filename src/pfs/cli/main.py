"""Command-line front end for PFS archives."""

import logging
import os
import sys
import warnings

from ..exceptions import OutOfMemoryPfsError, UnknownOptionPfsError
from ..io.compression import DEFAULT_COMPRESSION_LEVEL
from ..util import misc
from . import impl
from .options import OPTION_HANDLERS, Option, parse

logger = logging.getLogger(__name__)

#: Modes that operate on an opened archive, in the order they are checked
ARCHIVE_MODES = (
    (Option.EXTRACT, impl.extract),
    (Option.OUTPUT, impl.output),
    (Option.REMOVE, impl.remove),
    (Option.INSERT, impl.insert),
    (Option.WRITE, impl.write),
)


def compression_level_from_env(environ=None):
    """Compression level from ``PFS_COMPRESSION_LEVEL``, or the default if unset or invalid."""
    if environ is None:
        environ = os.environ
    value = environ.get('PFS_COMPRESSION_LEVEL')
    if value is None:
        return DEFAULT_COMPRESSION_LEVEL
    try:
        level = int(value)
    except ValueError:
        level = -1
    if not 0 <= level <= 9:
        warnings.warn(f'Ignoring invalid PFS_COMPRESSION_LEVEL={value!r}', stacklevel=2)
        return DEFAULT_COMPRESSION_LEVEL
    return level


def configure_logging(environ=None):
    """Set up root logging at the level named by ``PFS_LOG_LEVEL``; invalid names are ignored."""
    if environ is None:
        environ = os.environ
    level = environ.get('PFS_LOG_LEVEL')
    if not level:
        return
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        warnings.warn(f'Ignoring invalid PFS_LOG_LEVEL={level!r}', stacklevel=2)
        return
    logging.basicConfig(level=numeric, format='%(levelname)s:%(name)s:%(message)s')


def main(argv=None):
    """Run the tool on ``argv`` (defaults to ``sys.argv[1:]``) and return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    configure_logging()

    if not argv:
        impl.print_usage()
        return impl.EXIT_SUCCESS

    try:
        parsed = parse(argv, OPTION_HANDLERS)
    except UnknownOptionPfsError as e:
        print(f"Error: unknown option '{misc.display(e.token)}'", file=sys.stderr)
        return impl.EXIT_FAILURE
    except OutOfMemoryPfsError:
        print('Error: out of memory while processing arguments', file=sys.stderr)
        return impl.EXIT_FAILURE

    archive_kwargs = dict(compression_level=compression_level_from_env())

    if parsed.has(Option.HELP):
        impl.print_usage()
        return impl.EXIT_SUCCESS

    if parsed.has(Option.CREATE):
        return impl.create(parsed, **archive_kwargs)

    # The last token names the archive; it is not an argument of the option before it.
    path = argv[-1]
    if not path.startswith('-') and parsed.args:
        parsed.args.pop()

    pfs = impl.open_archive(path, **archive_kwargs)
    if pfs is None:
        return impl.EXIT_FAILURE

    with pfs:
        if parsed.has(Option.LIST):
            return impl.list_entries(
                pfs, show_sizes=parsed.has(Option.SIZES), show_human=parsed.has(Option.HUMAN)
            )
        for option, mode in ARCHIVE_MODES:
            if parsed.has(option):
                logger.debug('Running %s on %s', option.name.lower(), path)
                return mode(pfs, parsed, path)
        return impl.default_info(pfs, path)


if __name__ == '__main__':
    sys.exit(main())
