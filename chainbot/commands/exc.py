"""
Exceptions raised while parsing and running command chains.
"""
__all__ = [
    'ParseError', 'ChainSyntaxError', 'UnbalancedSubchainError', 'UnterminatedQuoteError', 'NestingDepthError',
    'ChainTooLongError',
    'UsageError', 'PrecheckError', 'ChainUsageError', 'InsufficientPermissionError',
    'ArgumentCountError', 'NotEnoughArgumentsError', 'TooManyArgumentsError',
]


class ParseError(ValueError):
    """
    Raised when text can't be parsed.

    :ivar message: Description of the problem.
    :ivar text: The text being parsed, if known.
    :ivar pos: Index into `text` where the problem was found, if known.
    """
    def __init__(self, message=None, text=None, pos=None):
        self.message = message or self.default_message()
        self.text = text
        self.pos = pos
        super().__init__(self.message)

    def default_message(self):
        """Message used when none is given to the constructor."""
        return None

    def __str__(self):
        message = self.message or 'Parse error'
        if self.pos:
            message += ' at position {}'.format(self.pos)
        return message

    def __repr__(self):
        args = [self.message or 'Parse error', self.text, self.pos]
        while args and args[-1] is None:
            args.pop()
        return "{}{!r}".format(type(self).__name__, tuple(args))


class ChainSyntaxError(ParseError):
    """
    Raised when a command chain is malformed or too big to run.  Reported to the user once, and the chain stops.

    :ivar syntax: The :class:`~chainbot.commands.chain.ChainSyntax` in effect, used to name the offending characters.
    """
    def __init__(self, message=None, text=None, pos=None, syntax=None):
        self.syntax = syntax
        super().__init__(message, text, pos)

    def __str__(self):
        return self.message or 'Your command chain is malformed!'


class UnbalancedSubchainError(ChainSyntaxError):
    """Raised when sub-chain brackets don't pair up."""

    def default_message(self):
        if self.syntax is None:
            return "Your subchains are mismatched!"
        return "Your subchains are mismatched! Make sure you don't have any extra {0}'s or {1}'s".format(
            self.syntax.sub_chain_start, self.syntax.sub_chain_end
        )


class UnterminatedQuoteError(ChainSyntaxError):
    """Raised when a quoted section never ends and strict quoting is enabled."""

    def default_message(self):
        if self.syntax is None:
            return "Your quotes are mismatched!"
        return "Your quotes are mismatched! Make sure every {0} is closed by a {1}".format(
            self.syntax.quote_start, self.syntax.quote_end
        )


class NestingDepthError(ChainSyntaxError):
    """Raised when sub-chains are nested deeper than allowed."""

    def default_message(self):
        if self.syntax is None:
            return "Your subchains are nested too deeply!"
        return "Your subchains are nested too deeply! (At most {} levels are allowed)".format(self.syntax.max_depth)


class ChainTooLongError(ChainSyntaxError):
    """Raised when a chain, with its sub-chains and repeats, tries to run more commands than allowed."""

    def default_message(self):
        if self.syntax is None:
            return "Your chain runs too many commands!"
        return "Your chain runs too many commands! (At most {} are allowed)".format(self.syntax.max_commands)


class UsageError(Exception):
    """
    Raised when a command is called the wrong way.
    """
    def __init__(self, message=None, event=None, command=None, arguments=None):
        """
        UsageErrors represent instances where a user calls a command incorrectly: too few or too many arguments, or
        in a place where the command can't be used.  They are reported back to the user and the command yields no
        result; the rest of the command chain still runs.

        :param message: Message for the user.  A default is built if omitted.
        :param event: The :class:`Event` for the chain.
        :param command: The `Command` that triggered the error.  May be None
        :param arguments: The arguments the command was called with.  May be None
        """
        super().__init__(message)
        self.event = event
        self.command = command
        self.arguments = arguments
        self.message = message or self.default_message()

    def default_message(self):
        """Message used when none is given to the constructor."""
        return None

    @property
    def name(self):
        """Name of the offending command, if known."""
        if self.command is None:
            return None
        return self.command.name

    def __str__(self):
        if self.message:
            return self.message
        return super().__str__()


class ArgumentCountError(UsageError):
    """Raised when a command gets the wrong number of arguments."""
    problem = "Incorrect number of arguments"

    def default_message(self):
        message = self.problem
        if self.name:
            message += " for command `{}`".format(self.name)
        message += "!"
        if self.command is None:
            return message

        min = self.command.min_args
        max = self.command.max_args
        if max is None:
            if min:
                expected = "at least {}".format(min)
            else:
                expected = "any number"
        elif min == max:
            expected = str(min)
        elif min:
            expected = "between {} and {}".format(min, max)
        else:
            expected = "up to {}".format(max)

        if self.arguments is not None:
            message = "{}  (Expected {}, got {})".format(message, expected, len(self.arguments))
        else:
            message = "{}  (Expected {})".format(message, expected)
        if self.command.usage:
            message += "\nUsage: `{}`".format(self.command.usage)
        return message


class NotEnoughArgumentsError(ArgumentCountError):
    """Raised when a command gets too few arguments."""
    problem = "Too few arguments"


class TooManyArgumentsError(ArgumentCountError):
    """Raised when a command gets too many arguments."""
    problem = "Too many arguments"


class PrecheckError(UsageError):
    """Raised when a command can't be used by this caller or in this place."""

    def default_message(self):
        return "This command is not available here."


class ChainUsageError(PrecheckError):
    """Raised when a command that refuses to run inside a chain is chained."""

    def default_message(self):
        return "Command `{}` cannot be used in a command chain!".format(self.name)


class InsufficientPermissionError(PrecheckError):
    """Raised when the caller's permission level is below the command's."""

    def default_message(self):
        return "You don't have permission to execute command `{}`!".format(self.name)
