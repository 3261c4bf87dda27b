"""Exceptions indicating various errors related to the use of PFS archives"""


class PfsError(Exception):
    """Base class for all exceptions in PFS

    Args:
        message: human-readable description of the failure
        path: archive path, filesystem path or entry name the failure is about
    """

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class NotFoundPfsError(PfsError):
    """Exception raised when an archive, a source file or an entry does not exist

    Analogous to FileNotFoundError

    Args:
        path: the path or entry name that was not found
    """

    def __init__(self, path: str):
        super().__init__(f'Not found: {path}', path)


class OutOfMemoryPfsError(PfsError):
    """Exception raised when an operation cannot allocate the memory it needs.

    Also raised when a payload does not fit the 32-bit size fields of the format.

    Args:
        path: path or entry name being processed when memory ran out
    """

    def __init__(self, path: str = None):
        super().__init__(f'Out of memory: {path}', path)


class FileErrorPfsError(PfsError):
    """Exception raised when reading from or writing to storage fails, or a source file is empty

    Args:
        path: the file that could not be read or written
    """

    def __init__(self, path: str = None, reason: str = None):
        message = f'File error: {path}'
        if reason:
            message = f'{message} ({reason})'
        super().__init__(message, path)


class CorruptedPfsError(PfsError):
    """Exception raised when a file is not a well-formed PFS archive

    Args:
        path: path of the malformed archive
        reason: which part of the layout failed validation
    """

    def __init__(self, path: str, reason: str = None):
        message = f'Not a valid PFS archive: {path}'
        if reason:
            message = f'{message} ({reason})'
        super().__init__(message, path)


class CompressionPfsError(PfsError):
    """Exception raised when compressing or decompressing an entry payload fails.

    This includes a CRC32C or size mismatch of the decoded bytes.
    """

    def __init__(self, path: str, reason: str = None):
        message = f'Compression failure: {path}'
        if reason:
            message = f'{message} ({reason})'
        super().__init__(message, path)


class AlreadyExistsPfsError(PfsError):
    """Exception raised when trying to create an archive where a file already exists

    Analogous to FileExistsError
    """

    def __init__(self, path: str):
        super().__init__(f'File already exists: {path}', path)


class UnknownOptionPfsError(PfsError):
    """Exception raised by the argument parser for an unrecognized option token.

    Args:
        token: the option exactly as typed, including its ``-`` or ``--`` prefix
    """

    def __init__(self, token: str):
        super().__init__(f'Unknown option: {token}', token)
        self.token = token


class ReadOnlyPfsError(PfsError, PermissionError):
    """Exception raised when modifying an archive that was opened read-only

    Args:
        path: path of the archive, or None for an archive never saved to disk
    """

    def __init__(self, path: str = None):
        super().__init__(f'Archive is read-only: {path}', path)
