import functools
import inspect
import itertools
import logging
import re
import threading
import types

import chainbot.util
from .exc import *
from .permissions import Permissions

__all__ = [
    'Registry', 'Command', 'PendingCommand', 'wrap_decorator', 'chain_decorator', 'command', 'alias', 'doc',
]

logger = logging.getLogger(__name__)


class Registry:
    """
    Holds the commands a bot knows and runs them on behalf of command chains.

    Registration replaces :attr:`aliases` and :attr:`commands` with new read-only snapshots while holding a lock.
    Lookups only ever read the current snapshot, so any number of chains can dispatch while commands are being added or
    removed.

    :ivar aliases: Read-only mapping of lowercased name -> command.
    :ivar commands: Frozenset of all registered commands.
    :ivar regex: Pattern that matches command lines.  Should have named groups 'prefix' and 'text'
    :ivar missing_message: Sent when a command doesn't exist.  '{command}' is replaced by the name.  None to stay quiet.
    :ivar permissions: :class:`Permissions` consulted before every command runs.
    """

    #: Pattern for command lines when only a prefix is given.  %% stands for the prefix.
    DEFAULT_PATTERN = r'(?P<prefix>%%)(?P<text>.*)'

    def __init__(self, prefix=None, pattern=None, missing_message=None, permissions=None):
        """
        :param prefix: Partial regular expression that matches the beginning of a command line.  Will be compiled into
            a more complete regular expression.  Ignored if 'pattern' is specified.
        :param pattern: Regular expression that matches a line of text and breaks it into named groups "prefix" and
            "text".  (At least "text" must be present.)
        :param missing_message: Message sent when a command does not exist.  None or '' disables it.
        :param permissions: A :class:`Permissions` instance.  A new, empty one is created if omitted.
        """
        if pattern is None:
            if prefix is None:
                prefix = '!'
            prefix = getattr(prefix, 'pattern', prefix)
            pattern = self.DEFAULT_PATTERN.replace("%%", prefix)
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.DOTALL)

        if 'text' not in pattern.groupindex:
            raise TypeError("pattern must have a group named 'text'")
        self.has_prefix = 'prefix' in pattern.groupindex
        self.regex = pattern
        self.missing_message = missing_message or None
        self.permissions = permissions if permissions is not None else Permissions()

        self._lock = threading.Lock()
        self.aliases = types.MappingProxyType({})
        self.commands = frozenset()

    @staticmethod
    def _names(command):
        names = set(alias.lower() for alias in command.aliases)
        if command.name:
            names.add(command.name.lower())
        return names

    def register(self, *commands):
        """
        Adds commands.

        :param commands: :class:`Command` instances.
        :raises: :class:`ValueError` if a name or alias is already taken.  Nothing is registered in that case.
        """
        with self._lock:
            aliases = dict(self.aliases)
            for command in commands:
                names = self._names(command)
                if not names:
                    raise ValueError("Command {!r} has no name".format(command))
                dupes = names.intersection(aliases.keys())
                if dupes:
                    raise ValueError("Duplicate command alias {!r}".format(dupes.pop()))
                aliases.update(zip(names, itertools.repeat(command)))
            self.aliases = types.MappingProxyType(aliases)
            self.commands = self.commands.union(commands)
        logger.debug("Registered {}".format(", ".join(repr(command) for command in commands)))

    def unregister(self, *commands):
        """
        Removes one or more commands from the registry.  Commands that aren't registered are ignored.

        :param commands: Command(s) to remove.
        """
        with self._lock:
            self.aliases = types.MappingProxyType(
                {name: command for name, command in self.aliases.items() if command not in commands}
            )
            self.commands = self.commands.difference(commands)

    def command(self, *args, **kwargs):
        """
        Same as :func:`command`, but using this registry by default.

        :param args: Passed to decorator
        :param kwargs: Passed to decorator
        """
        kwargs.setdefault('registry', self)
        return command(*args, **kwargs)

    def lookup(self, search):
        """
        Finds a command by name or alias, ignoring case and surrounding whitespace.

        :param search: Name to look for.
        :returns: The :class:`Command`, or None.
        """
        return self.aliases.get(search.lower().strip())

    def match(self, text):
        """
        Splits a line of text into its prefix and the command chain that follows it.

        :param text: Line of text.
        :returns: A (prefix, chain) tuple, or False if the line isn't meant for us.
        """
        result = self.regex.fullmatch(text)
        if not result:
            return False
        return result.group('prefix') if self.has_prefix else None, result.group('text') or ''

    def execute(self, name, event, arguments, chained=False):
        """
        Runs one command on behalf of a chain.

        Problems with the call itself (the command doesn't exist, the caller lacks permission, wrong argument count,
        not usable in a chain) are reported with `event.respond` and produce None.  Exceptions raised by the command
        body propagate.

        :param name: Name the command was called by.
        :param event: An :class:`Event`.
        :param arguments: List of string arguments.
        :param chained: True if the command is being run as part of a chain with other commands.
        :returns: The command's result as a str, or None if it could not be run.
        """
        logger.debug("Executing command {!r} with arguments {!r}".format(name, arguments))
        command = self.lookup(name)
        if command is None:
            if self.missing_message:
                event.respond(self.missing_message.replace('{command}', name))
            return None

        event.name = name
        event.registry = self
        try:
            if not self.permissions.allows(event, command):
                if command.permission_message is False:
                    return None
                raise InsufficientPermissionError(command.permission_message, event, command, arguments)
            result = command(event, arguments, chained)
        except UsageError as ex:
            event.respond(str(ex))
            return None
        if result is None:
            return ''
        return str(result)


class Command:
    """
    A bot command: a function plus the rules for calling it.

    Commands are normally built with the :func:`command`, :func:`alias` and :func:`doc` decorators, which may be
    stacked and are read top to bottom::

        @command('memo', max_args=1)
        @alias('note')
        @alias('remember')
        @doc('Saves a memo.')
        def memo(event, text):
            pass

    Here the aliases are ``note`` then ``remember``, even though the decorators run in the opposite order.

    The function is called as ``function(event, *arguments)`` and whatever it returns (converted to str) is the result
    handed to the next command in the chain.
    """
    def __init__(
            self, function, name=None, aliases=None, min_args=0, max_args=None, chain_usable=True,
            permission_level=0, permission_message=None, usage=None, doc=None, help_available=True, category=None
    ):
        """
        Defines a new command.

        :param function: Called as function(event, *arguments).
        :param name: Command name.  If None, uses the first alias, or the function's name.
        :param aliases: Command aliases.
        :param min_args: Minimum number of arguments.
        :param max_args: Maximum number of arguments.  None (or a negative number) for no limit.
        :param chain_usable: If False, the command refuses to run as part of a chain.
        :param permission_level: Minimum :class:`Permissions` level needed to run the command.
        :param permission_message: Overrides the message shown to callers below `permission_level`.  False to say
            nothing.
        :param usage: Usage text shown with argument count errors and in help.
        :param doc: Detailed help text.
        :param help_available: If False, the command is hidden from help listings.
        :param category: Category used to group commands in help.
        """
        if max_args is not None and max_args < 0:
            max_args = None
        self.function = function
        self.name = name
        self.aliases = aliases or []
        self.min_args = min_args
        self.max_args = max_args
        self.chain_usable = chain_usable
        self.permission_level = permission_level
        self.permission_message = permission_message
        self.usage = usage
        self.doc = doc
        self.help_available = help_available
        self.category = category
        self.finish()

    def finish(self):
        """
        Fills in a name if we weren't given one.
        """
        if self.name:
            return
        if self.aliases:
            self.name = self.aliases[0]
        elif self.function is not None:
            self.name = getattr(self.function, '__name__', None)

    def export(self, registry=None, **kwargs):
        """
        Copies this command, changing whatever `kwargs` says, and optionally registers the copy.

        :param registry: :class:`Registry` to register the copy with, if any.
        :param kwargs: Constructor arguments for the copy.  Anything omitted is taken from this command.
        :return: The copy.
        """
        for attr in (
            'function', 'name', 'min_args', 'max_args', 'chain_usable', 'permission_level', 'permission_message',
            'usage', 'doc', 'help_available', 'category'
        ):
            kwargs.setdefault(attr, getattr(self, attr))
        if 'aliases' not in kwargs:
            kwargs['aliases'] = self.aliases.copy()

        created = type(self)(**kwargs)
        if registry:
            registry.register(created)
        return created

    @staticmethod
    def arity(function):
        """
        Works out (min_args, max_args) from a function's signature.  The first parameter receives the event and is not
        counted.  A ``*args`` parameter means there is no maximum.

        :param function: Function to inspect.
        """
        min_args = max_args = 0
        unlimited = False
        params = list(inspect.signature(function).parameters.values())[1:]
        for param in params:
            if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
                max_args += 1
                if param.default is inspect.Parameter.empty:
                    min_args += 1
            elif param.kind == inspect.Parameter.VAR_POSITIONAL:
                unlimited = True
        return min_args, (None if unlimited else max_args)

    def __call__(self, event, arguments, chained=False):
        """
        Checks the call is allowed and runs the command.

        :param event: The :class:`Event` for the chain.
        :param arguments: List of string arguments.
        :param chained: True if we're part of a chain with other commands.
        :raises: :class:`UsageError` if the call isn't allowed.
        """
        if len(arguments) < self.min_args:
            raise NotEnoughArgumentsError(event=event, command=self, arguments=arguments)
        if self.max_args is not None and len(arguments) > self.max_args:
            raise TooManyArgumentsError(event=event, command=self, arguments=arguments)
        if chained and not self.chain_usable:
            raise ChainUsageError(event=event, command=self, arguments=arguments)
        event.command = self
        return self.function(event, *arguments)

    def __repr__(self):
        return "<{}({!r})>".format(type(self).__name__, self.name)

    @classmethod
    def from_pending(cls, pending, registry=None, **kwargs):
        """
        Builds a command from a :class:`PendingCommand` collected by stacked decorators.

        :param pending: The :class:`PendingCommand`.
        :param registry: :class:`Registry` to register the result with, if any.
        :param kwargs: Constructor arguments.  Aliases and help text given here come before those from the decorators.
        """
        # Decorators run bottom-up; reversing restores the order they were written in.
        aliases = list(kwargs.get('aliases') or [])
        aliases.extend(reversed(pending.aliases))
        helptext = list(chainbot.util.listify(kwargs.get('doc')))
        helptext.extend(reversed(pending.doc))
        kwargs.update(aliases=aliases, doc="\n".join(helptext) or None)

        created = cls(pending.function, **kwargs)
        if registry:
            registry.register(created)
        return created


class PendingCommand:
    """
    Stands in for a function while :func:`alias` and :func:`doc` collect settings for it, until :func:`command` turns
    it into a real :class:`Command`.  Calling it calls the function.
    """
    def __init__(self, function):
        self.function = function
        self.aliases = []  # In reverse order
        self.doc = []  # In reverse order

    def __call__(self, *args, **kwargs):
        return self.function(*args, **kwargs)


def wrap_decorator(fn):
    """
    Lets `fn` be used both directly and as a decorator factory.

    ``fn(function, ...)`` calls `fn` as normal.  ``fn(...)`` with anything other than a callable first argument returns
    a decorator that supplies the function later.

    :param fn: Function whose first parameter receives the decorated function.
    """
    first = next(iter(inspect.signature(fn).parameters.values()), None)
    assert first and first.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        target = args[0] if args else kwargs.get(first.name)
        if callable(target):
            return fn(*args, **kwargs)
        return lambda function: fn(function, *args, **kwargs)
    return wrapper


def chain_decorator(fn):
    """
    Makes a stackable decorator out of `fn`, which is handed a :class:`PendingCommand` (created on first use) to
    modify.  The same :class:`PendingCommand` is returned so the next decorator up can keep going.

    :param fn: Function modifying a :class:`PendingCommand`.
    """
    @functools.wraps(fn)
    @wrap_decorator
    def wrapper(pending, *args, **kwargs):
        if not isinstance(pending, PendingCommand):
            pending = PendingCommand(pending)
        fn(pending, *args, **kwargs)
        return pending
    return wrapper


_infer = object()


@wrap_decorator
def command(
    fn=None, name=None, aliases=None, doc=None, category=None, usage=None, min_args=_infer, max_args=_infer,
    registry=None, factory=Command, return_command=False, **kwargs
):
    """
    Turns a function into a :class:`Command`.

    When stacked with :func:`alias` or :func:`doc`, this must be the topmost decorator.

    If neither `min_args` nor `max_args` is given, both are worked out from the function's signature.

    :param fn: The function, or a :class:`PendingCommand`.
    :param name: Command name.  Defaults to the first alias, then the function's name.
    :param aliases: Aliases, ahead of any from :func:`alias`.
    :param doc: Help text, ahead of any from :func:`doc`.
    :param category: Category used by help.
    :param usage: Usage text.
    :param min_args: Minimum number of arguments.
    :param max_args: Maximum number of arguments, or None for no limit.
    :param registry: :class:`Registry` to register the command with.  None to leave it unregistered.
    :param factory: :class:`Command` subclass (or any callable taking the same arguments) that builds the command.
    :param return_command: If True, returns the command itself instead of the original function.
    :param kwargs: Further arguments for `factory`.
    :return: The original function, or the new command if `return_command` is set.
    """
    pending = fn if isinstance(fn, PendingCommand) else PendingCommand(fn)

    if min_args is _infer and max_args is _infer:
        min_args, max_args = Command.arity(pending.function)
    else:
        if min_args is _infer:
            min_args = 0
        if max_args is _infer:
            max_args = None

    build = getattr(factory, 'from_pending', None)
    if build is None:
        build = functools.partial(Command.from_pending.__func__, factory)

    created = build(
        pending, registry,
        name=name, aliases=aliases, doc=doc, category=category, usage=usage, min_args=min_args, max_args=max_args,
        **kwargs
    )
    return created if return_command else pending.function


@chain_decorator
def alias(fn, *aliases):
    """
    Gives the command being built more names.

    :param fn: The function, or a :class:`PendingCommand`.
    :param aliases: Names to add.
    """
    fn.aliases.extend(reversed(aliases))


@chain_decorator
def doc(fn, helptext):
    """
    Adds a line of help text to the command being built.

    :param fn: The function, or a :class:`PendingCommand`.
    :param helptext: Text to add.
    """
    fn.doc.append(helptext)
