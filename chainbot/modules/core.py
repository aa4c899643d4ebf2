"""
Core bot functionality.

To add commands in this module with their default settings, simply register them.

To override settings, use command.export(...) before registering them.

`help_command`
    Adds ``help``.  Common options are:

    ``list_limit=5``
        Up to this many commands are listed along with their descriptions.  Longer lists only show names.
"""
import itertools

from chainbot.commands import Command, command, doc


class HelpCommand(Command):
    def __init__(self, *args, list_limit=5, **kwargs):
        """
        Specialized HelpCommand data.

        :param args: Passed to superclass
        :param list_limit: Commands are listed with descriptions if there are no more than this many.
        :param kwargs: Passed to superclass.
        """
        self.list_limit = list_limit
        super().__init__(*args, **kwargs)

    def export(self, registry=None, **kwargs):
        kwargs.setdefault('list_limit', self.list_limit)
        return super().export(registry, **kwargs)


def describe(command):
    """Returns a one line description of a command."""
    if not command.doc:
        return "*No description available*"
    return command.doc.splitlines()[0]


@command(
    'help', factory=HelpCommand, return_command=True, max_args=1, usage='help [command name]',
    list_limit=5
)
@doc('Shows a list of all the commands available or displays help for a specific command.')
def help_command(event, name=None):
    """
    Produces help.
    :param event: Event
    :param name: Optional command name to search for.
    """
    registry = event.registry
    if name:
        command = registry.lookup(name)
        if command is None or not command.help_available:
            return "The command `{}` does not exist!".format(name)
        result = "**`{}`**: {}".format(command.name, describe(command))
        aliases = [alias for alias in command.aliases if alias.lower() != command.name.lower()]
        if aliases:
            result += "\nAliases: " + ", ".join("`{}`".format(alias) for alias in aliases)
        if command.usage:
            result += "\nUsage: `{}`".format(command.usage)
        return result

    # Sort it and group by category
    commands = sorted(
        filter(lambda item: item.help_available, registry.commands),
        key=lambda item: ((item.category or "").lower(), item.name)
    )
    if not commands:
        return "No commands are available."

    lines = ["**List of commands:**"]
    if len(commands) <= event.command.list_limit:
        lines.extend("**`{}`**: {}".format(c.name, describe(c)) for c in commands)
        return "\n".join(lines)

    for category, commandlist in itertools.groupby(commands, key=lambda item: (item.category or "").lower()):
        fmt = ("[{category}]: " if category else "") + "{commands}"
        lines.append(fmt.format(
            category=category.upper(),
            commands=", ".join("`{}`".format(c.name) for c in commandlist)
        ))
    return "\n".join(lines)
