"""
Command chains.

A command chain lets one message run several commands, feeding each command's result into the next::

    !roll 2d6 > double > say I rolled ~

Syntax (all characters are configurable, see :class:`ChainSyntax`):

``>`` (chain delimiter)
    Separates commands.  Each command receives the previous command's result.
``~`` (previous)
    Stands for the previous command's result.  If a command's arguments don't mention it, it is appended at the end.
``[ ]`` (sub-chain start/end)
    A complete chain nested inside another.  It runs first and its result takes its place in the outer chain.
``" "`` (quote start/end)
    Everything between quotes is literal: delimiters, previous markers and spaces lose their meaning.
``\\`` (escape)
    The next character is literal, as if it were quoted.
``:`` (chain arguments delimiter)
    Anything before it is a comma separated list of directives for the whole chain, e.g. ``repeat 3: roll 1d20``.

Quoted characters are swapped for private-use code points (see the ``ESCAPED_*`` constants) while the chain is split
apart, and swapped back once they can no longer be mistaken for syntax.
"""
import collections
import functools
import logging
import re

import chainbot.util
from .exc import *

__all__ = [
    'ChainSyntax', 'CommandBudget', 'CommandChain', 'DIRECTIVES', 'directive', 'divide_chain', 'split_chain',
    'parse_segment', 'process_chain', 'strip_sentinels',
    'ESCAPED_DELIMITER', 'ESCAPED_SPACE', 'ESCAPED_PREVIOUS', 'ESCAPED_NEWLINE', 'ESCAPED_ARGS_DELIMITER', 'SENTINELS',
]

logger = logging.getLogger(__name__)

#: Stands in for a quoted chain delimiter.
ESCAPED_DELIMITER = '\ue001'
#: Stands in for a quoted space.
ESCAPED_SPACE = '\ue002'
#: Stands in for a quoted previous-result marker.
ESCAPED_PREVIOUS = '\ue003'
#: Stands in for a quoted newline.
ESCAPED_NEWLINE = '\ue004'
#: Stands in for a quoted chain arguments delimiter.
ESCAPED_ARGS_DELIMITER = '\ue005'

SENTINELS = frozenset((
    ESCAPED_DELIMITER, ESCAPED_SPACE, ESCAPED_PREVIOUS, ESCAPED_NEWLINE, ESCAPED_ARGS_DELIMITER
))
_sentinel_re = re.compile('[{}]'.format(''.join(sorted(SENTINELS))))


def strip_sentinels(text):
    """
    Removes any private-use sentinel characters from text.  Applied to everything entering a chain from outside.

    :param text: Text to clean.
    """
    return _sentinel_re.sub('', text)


class ChainSyntax(collections.namedtuple('_ChainSyntax', [
    'previous', 'chain_delimiter', 'chain_args_delim', 'sub_chain_start', 'sub_chain_end', 'quote_start', 'quote_end',
    'escape', 'max_depth', 'max_repeats', 'strict_quotes', 'max_commands'
])):
    """
    The characters and limits that define chain syntax.

    :ivar max_depth: How deeply sub-chains may be nested.
    :ivar max_repeats: Upper bound for the ``repeat`` directive.
    :ivar strict_quotes: If True, a quote that is never closed is an error.  Otherwise it runs to the end of the chain.
    :ivar max_commands: How many commands one chain may run in total, counting sub-chains and repeats.
    """
    #: Attributes that must hold exactly one character.
    CHARACTERS = (
        'previous', 'chain_delimiter', 'chain_args_delim', 'sub_chain_start', 'sub_chain_end', 'quote_start',
        'quote_end', 'escape'
    )

    def __new__(
            cls, previous='~', chain_delimiter='>', chain_args_delim=':', sub_chain_start='[', sub_chain_end=']',
            quote_start='"', quote_end='"', escape='\\', max_depth=8, max_repeats=50, strict_quotes=False,
            max_commands=500
    ):
        """
        Creates a new :class:`ChainSyntax`

        :raises: :class:`ValueError` if a character setting isn't exactly one non-whitespace character, or if two
            settings share a character.  (quote_start and quote_end may be the same.)
        """
        # noinspection PyTypeChecker
        self = super().__new__(
            cls, previous, chain_delimiter, chain_args_delim, sub_chain_start, sub_chain_end, quote_start, quote_end,
            escape, int(max_depth), int(max_repeats), bool(strict_quotes), int(max_commands)
        )
        seen = {}
        for attr in self.CHARACTERS:
            value = getattr(self, attr)
            if not isinstance(value, str) or len(value) != 1:
                raise ValueError("{} must be exactly one character (got {!r})".format(attr, value))
            if value.isspace() or value in SENTINELS:
                raise ValueError("{} cannot be {!r}".format(attr, value))
            if attr == 'quote_end' and value == self.quote_start:
                continue
            if value in seen:
                raise ValueError("{} and {} cannot both be {!r}".format(seen[value], attr, value))
            seen[value] = attr
        if self.max_depth < 0:
            raise ValueError('max_depth cannot be negative')
        if self.max_repeats < 0:
            raise ValueError('max_repeats cannot be negative')
        if self.max_commands < 1:
            raise ValueError('max_commands must be at least 1')
        return self


@functools.lru_cache(maxsize=16)
def _tables(syntax):
    """Returns (quoted, spliced) translation tables for a syntax."""
    spliced = {
        syntax.chain_delimiter: ESCAPED_DELIMITER,
        syntax.previous: ESCAPED_PREVIOUS,
        syntax.chain_args_delim: ESCAPED_ARGS_DELIMITER,
    }
    quoted = dict(spliced)
    quoted.update({' ': ESCAPED_SPACE, '\n': ESCAPED_NEWLINE})
    return str.maketrans(quoted), str.maketrans(spliced)


def _unescape(text, syntax):
    return (
        text.replace(ESCAPED_DELIMITER, syntax.chain_delimiter)
        .replace(ESCAPED_ARGS_DELIMITER, syntax.chain_args_delim)
        .replace(ESCAPED_PREVIOUS, syntax.previous)
        .replace(ESCAPED_SPACE, ' ')
        .replace(ESCAPED_NEWLINE, '\n')
    )


def divide_chain(text, syntax):
    """
    Separates the chain arguments (if any) from the commands.

    ``"repeat 3, foo bar: roll"`` -> ``([['repeat', '3'], ['foo', 'bar']], ' roll')``

    :param text: Escaped chain text, with sub-chains already resolved.
    :param syntax: A :class:`ChainSyntax`.
    :returns: A (directives, body) tuple.  Each directive is a list of words, name first.
    """
    index = text.find(syntax.chain_args_delim)
    if index < 0:
        return [], text

    directives = []
    for clause in text[:index].split(','):
        words = [_unescape(word, syntax) for word in clause.split()]
        if words:
            directives.append(words)
    return directives, text[index + 1:]


def split_chain(text, syntax):
    """
    Splits escaped chain text into command segments.

    A chain that starts with the delimiter keeps it on its first segment, so a command named after the delimiter
    can still be called.  Blank segments are dropped.

    :param text: Escaped chain text without chain arguments.
    :param syntax: A :class:`ChainSyntax`.
    :returns: List of (still escaped) segments.
    """
    delimiter = syntax.chain_delimiter
    text = text.lstrip()
    leading = text.startswith(delimiter)
    if leading:
        text = text[1:]
    segments = text.split(delimiter)
    if leading:
        segments[0] = delimiter + segments[0]
    return [segment for segment in segments if segment.strip()]


def parse_segment(segment, previous, syntax):
    """
    Turns one escaped segment into a command name and its final arguments.

    :param segment: Segment from :func:`split_chain`.
    :param previous: Result of the previous command.
    :param syntax: A :class:`ChainSyntax`.
    :returns: A (name, arguments) tuple.
    """
    segment = (
        segment.replace(ESCAPED_DELIMITER, syntax.chain_delimiter)
        .replace(ESCAPED_ARGS_DELIMITER, syntax.chain_args_delim)
        .strip()
    )
    name, *rest = segment.split(None, 1)
    arguments = rest[0] if rest else ''

    if syntax.previous not in arguments:
        arguments = (arguments + ' ' + syntax.previous) if arguments else syntax.previous
    arguments = arguments.replace(syntax.previous, previous)
    arguments = arguments.replace(ESCAPED_PREVIOUS, syntax.previous)

    return _unescape(name, syntax), [
        argument.replace(ESCAPED_SPACE, ' ').replace(ESCAPED_NEWLINE, '\n') for argument in arguments.split()
    ]


_Subchain = collections.namedtuple('_Subchain', 'body pos')


class CommandBudget:
    """
    Commands a top-level chain has left to run.  Shared by all of its sub-chains and repeats.

    :ivar limit: Commands allowed in total.
    :ivar used: Commands run so far.
    """
    def __init__(self, limit):
        self.limit = limit
        self.used = 0

    def spend(self, chain):
        """
        Accounts for one command about to be run by `chain`.

        :raises: :class:`ChainTooLongError` if the budget is already used up.
        """
        if self.used >= self.limit:
            raise ChainTooLongError(text=chain.chain, syntax=chain.syntax)
        self.used += 1


class CommandChain:
    """
    One command chain (or sub-chain) and the machinery to run it.

    :ivar chain: Raw chain text.
    :ivar registry: :class:`Registry` that commands are executed through.
    :ivar syntax: :class:`ChainSyntax` in effect.
    :ivar subchain: True if we're nested inside another chain.
    :ivar depth: How deeply we're nested.  0 for a top-level chain.
    :ivar directives: Chain arguments found by the last run.
    :ivar body: Raw chain text after the chain arguments.  Set by the last run.
    :ivar budget: :class:`CommandBudget` shared with every chain run on behalf of the same top-level chain.
    """
    def __init__(self, chain, registry, syntax=None, subchain=False, depth=0, directives=True, budget=None):
        """
        Creates a new :class:`CommandChain`

        :param chain: Raw chain text.
        :param registry: :class:`Registry` that commands are executed through.
        :param syntax: :class:`ChainSyntax`.  Defaults are used if None.
        :param subchain: True if this chain is nested inside another chain.
        :param depth: Nesting depth.
        :param directives: If False, chain arguments are not looked for.
        :param budget: :class:`CommandBudget` to draw from.  A new one sized by `syntax.max_commands` if None.
        """
        self.chain = chain
        self.registry = registry
        self.syntax = syntax or ChainSyntax()
        self.subchain = subchain
        self.depth = depth
        self.allow_directives = directives
        self.directives = []
        self.body = chain
        self.budget = budget if budget is not None else CommandBudget(self.syntax.max_commands)

    def derive(self, chain, **kwargs):
        """Creates another chain with the same registry, syntax and budget as this one."""
        return CommandChain(chain, self.registry, self.syntax, budget=self.budget, **kwargs)

    def scan(self):
        """
        Walks the raw chain once, escaping quoted sections and locating sub-chains.

        :returns: A (parts, body_start) tuple.  `parts` is a list of escaped strings and unresolved sub-chains in
            order; `body_start` is the index in the raw chain just past the chain arguments delimiter, or None.
        :raises: :class:`ChainSyntaxError` if brackets don't pair up, nesting is too deep or (if strict) a quote is
            left open.
        """
        syntax = self.syntax
        quoted_table, _ = _tables(syntax)
        parts, buf = [], []
        level, start = 0, -1
        quoted = escaped = False
        quote_pos = None
        body_start = None

        for index, char in enumerate(self.chain):
            if escaped:
                escaped = False
                if not level:
                    buf.append(char.translate(quoted_table))
                continue
            if char == syntax.escape:
                escaped = True
                continue

            if quoted:
                if char == syntax.quote_end:
                    quoted = False
                elif not level:
                    buf.append(char.translate(quoted_table))
                continue

            if char == syntax.quote_start:
                quoted = True
                quote_pos = index
            elif char == syntax.sub_chain_start:
                if not level:
                    start = index
                level += 1
                if self.depth + level > syntax.max_depth:
                    raise NestingDepthError(text=self.chain, pos=index, syntax=syntax)
            elif char == syntax.sub_chain_end:
                level -= 1
                if level < 0:
                    raise UnbalancedSubchainError(text=self.chain, pos=index, syntax=syntax)
                if not level:
                    parts.append(''.join(buf))
                    buf = []
                    parts.append(_Subchain(self.chain[start + 1:index], start))
            elif not level:
                if char == syntax.chain_args_delim and body_start is None:
                    body_start = index + 1
                buf.append(char)

        if level:
            raise UnbalancedSubchainError(text=self.chain, pos=start, syntax=syntax)
        if quoted and syntax.strict_quotes:
            raise UnterminatedQuoteError(text=self.chain, pos=quote_pos, syntax=syntax)
        if escaped:
            # A trailing escape has nothing to escape; keep it.
            buf.append(syntax.escape)
        parts.append(''.join(buf))
        return parts, body_start

    def resolve(self, event):
        """
        Scans the chain and runs its sub-chains, splicing their results in.

        :param event: :class:`Event` handed to the commands.
        :returns: Escaped chain text.
        """
        parts, body_start = self.scan()
        if body_start is not None and self.allow_directives:
            self.body = self.chain[body_start:]
        _, spliced = _tables(self.syntax)

        result = []
        for part in parts:
            if isinstance(part, _Subchain):
                logger.debug("Executing sub-chain {!r} at depth {}".format(part.body, self.depth + 1))
                nested = self.derive(part.body, subchain=True, depth=self.depth + 1)
                part = strip_sentinels(nested.execute(event)).translate(spliced)
            result.append(part)
        return ''.join(result)

    def execute_bare(self, event):
        """
        Runs the chain's commands without applying chain arguments.

        :param event: :class:`Event` handed to the commands.
        :returns: The last command's result.
        """
        text = self.resolve(event)
        if self.allow_directives:
            self.directives, text = divide_chain(text, self.syntax)

        segments = split_chain(text, self.syntax)
        chained = self.subchain or len(segments) > 1
        previous = ''
        for segment in segments:
            name, arguments = parse_segment(segment, previous, self.syntax)
            self.budget.spend(self)
            result = self.registry.execute(name, event, arguments, chained)
            previous = strip_sentinels(result or '')
        return previous

    def execute(self, event):
        """
        Runs the chain, then applies its chain arguments.

        :param event: :class:`Event` handed to the commands.
        :returns: The chain's result.
        """
        logger.debug("Executing chain {!r}".format(self.chain))
        result = self.execute_bare(event)
        if self.directives:
            logger.debug("Found chain args {!r}, preliminary result {!r}".format(self.directives, result))

        for name, *args in self.directives:
            handler = DIRECTIVES.get(name.lower())
            if handler is None:
                logger.debug("Ignoring unknown chain argument {!r}".format(name))
                continue
            result = handler(self, event, result, args)
        return result


#: Chain argument handlers by name.  Each is called as handler(chain, event, result, args) and returns the new result.
DIRECTIVES = {}


def directive(name, fn=None):
    """
    Registers a chain argument handler.  If fn is None, returns a decorator

    :param name: Directive name, as typed before the chain arguments delimiter.
    :param fn: Handler called as fn(chain, event, result, args).  Returns the chain's new result.
    """
    if fn is None:
        return functools.partial(directive, name)
    DIRECTIVES[name.lower()] = fn
    return fn


@directive('repeat')
def repeat(chain, event, result, args):
    """
    ``repeat N``: runs the chain N more times.  The result is all of those runs' results joined together.

    Anything that isn't a number counts as zero, and counts above ``max_repeats`` count as ``max_repeats``.
    """
    count = chainbot.util.leading_int(args[0] if args else None, limit=chain.syntax.max_repeats)
    if count <= 0:
        return result

    results = []
    for _ in range(count):
        rerun = chain.derive(chain.body, subchain=chain.subchain, depth=chain.depth, directives=False)
        results.append(rerun.execute(event))
    return ''.join(results)


def process_chain(text, event, registry, syntax=None):
    """
    Runs a complete command chain.

    Syntax errors are reported once with `event.respond` and nothing is run.  A chain that runs out of commands (see
    :attr:`ChainSyntax.max_commands`) stops where it is and is reported the same way.  Exceptions raised by commands
    propagate.

    :param text: Chain text (after the trigger prefix).
    :param event: :class:`Event` handed to the commands.
    :param registry: :class:`Registry` that commands are executed through.
    :param syntax: :class:`ChainSyntax`.  Defaults are used if None.
    :returns: The chain's result.  '' if nothing was produced.
    """
    chain = CommandChain(strip_sentinels(text), registry, syntax)
    try:
        return chain.execute(event)
    except ChainSyntaxError as ex:
        logger.debug("Chain syntax error: {!r}".format(ex))
        event.respond(str(ex))
        return ''
