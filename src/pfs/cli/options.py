"""Command-line option parsing for the pfs tool.

Options are not parsed with argparse: every bare token binds to the option that most recently
preceded it, so ``-e a b -r c`` extracts ``a`` and ``b`` and removes ``c``, and combined short
options such as ``-lh`` are split into their letters.
"""

from enum import Flag, auto
from typing import Iterator, Mapping, Optional, Sequence

from ..exceptions import OutOfMemoryPfsError, UnknownOptionPfsError


class Option(Flag):
    """The options understood by the tool. A parsed command line holds a combination of them."""

    LIST = auto()
    HUMAN = auto()
    SIZES = auto()
    EXTRACT = auto()
    OUTPUT = auto()
    INSERT = auto()
    REMOVE = auto()
    CREATE = auto()
    WRITE = auto()
    HELP = auto()


#: Option names, without their leading dashes, mapped to the option they select.
#: Single-character names are used as short options, the rest as long options.
OPTION_HANDLERS = {
    'l': Option.LIST,
    'list': Option.LIST,
    's': Option.SIZES,
    'sizes': Option.SIZES,
    'h': Option.HUMAN,
    'human': Option.HUMAN,
    'e': Option.EXTRACT,
    'extract': Option.EXTRACT,
    'o': Option.OUTPUT,
    'output': Option.OUTPUT,
    'r': Option.REMOVE,
    'remove': Option.REMOVE,
    'i': Option.INSERT,
    'insert': Option.INSERT,
    'w': Option.WRITE,
    'write': Option.WRITE,
    'c': Option.CREATE,
    'create': Option.CREATE,
    'help': Option.HELP,
}


class OptionArg:
    """A bare command-line token together with the option it belongs to.

    Args:
        value: the token as typed
        option: the option that most recently preceded the token
    """

    __slots__ = ('value', 'option')

    def __init__(self, value: str, option: Option):
        self.value = value
        self.option = option

    def __repr__(self):
        return f'OptionArg({self.value!r}, {self.option})'

    def __eq__(self, other):
        if not isinstance(other, OptionArg):
            return NotImplemented
        return self.value == other.value and self.option == other.option


class OptionArgList:
    """Ordered storage for :class:`OptionArg` records.

    Storage is allocated in powers of two: the capacity becomes 1 on the first append and doubles
    every time the count reaches the capacity.
    """

    def __init__(self):
        self._slots = []
        self._count = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def append(self, arg: OptionArg):
        if self._count == len(self._slots):
            try:
                self._slots.extend([None] * max(1, self._count))
            except MemoryError:
                raise OutOfMemoryPfsError('arguments')
        self._slots[self._count] = arg
        self._count += 1

    def pop(self) -> OptionArg:
        if self._count == 0:
            raise IndexError('pop from empty OptionArgList')
        self._count -= 1
        arg = self._slots[self._count]
        self._slots[self._count] = None
        return arg

    def __len__(self):
        return self._count

    def __iter__(self) -> Iterator[OptionArg]:
        for i in range(self._count):
            yield self._slots[i]

    def __getitem__(self, index):
        if isinstance(index, slice):
            return list(self)[index]
        if index < 0:
            index += self._count
        if not 0 <= index < self._count:
            raise IndexError('OptionArgList index out of range')
        return self._slots[index]

    def __bool__(self):
        return self._count > 0


class ParsedArgs:
    """Result of :func:`parse`: the options present and the bare tokens bound to them."""

    def __init__(self):
        self.flags = Option(0)
        self.args = OptionArgList()

    def has(self, option: Option) -> bool:
        """True if ``option`` appeared on the command line."""
        return bool(self.flags & option)

    def values(self, option: Option) -> Iterator[str]:
        """Values bound to ``option``, in command-line order."""
        return (arg.value for arg in self.args if arg.option == option)

    def first(self, option: Option) -> Optional[str]:
        """First value bound to ``option``, or None if there is none."""
        return next(self.values(option), None)


def parse(tokens: Sequence[str], handlers: Mapping[str, Option] = None) -> ParsedArgs:
    """Parse command-line tokens (without the program name) into options and their values.

    A token starting with ``--`` names one long option. Any other token starting with ``-`` is a
    group of short options, one per character, handled left to right. Each recognized option is
    added to the result flags and becomes the option that following bare tokens bind to. Bare
    tokens seen before any option are dropped.

    Args:
        tokens: the command-line tokens
        handlers: option names (without dashes) mapped to options; defaults to
            :data:`OPTION_HANDLERS`

    Returns:
        The parsed options and their values.

    Raises:
        UnknownOptionPfsError: For the first option token that is not in ``handlers``.
        OutOfMemoryPfsError: If the argument list cannot grow.
    """
    if handlers is None:
        handlers = OPTION_HANDLERS

    result = ParsedArgs()
    current = None

    for token in tokens:
        if token.startswith('--'):
            names = [token[2:]]
            prefix = '--'
        elif token.startswith('-'):
            names = token[1:]
            prefix = '-'
        else:
            if current is not None:
                result.args.append(OptionArg(token, current))
            continue

        for name in names:
            option = handlers.get(name)
            if option is None:
                raise UnknownOptionPfsError(prefix + name)
            result.flags |= option
            current = option

    return result
