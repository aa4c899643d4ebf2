"""
Chain-capable IRC bots for Pydle.

This package adds a Pydle subclass that runs bot commands, including command chains: several commands in one message,
each one receiving the previous one's result.
"""
import concurrent.futures
import configparser
import contextlib
import functools
import logging
import re
import textwrap

import pydle
import tornado.concurrent
import tornado.ioloop

import chainbot.commands
import chainbot.modules.core
import chainbot.util
from chainbot.commands import ChainSyntax, Registry

logger = logging.getLogger(__name__)


class ConfigSection(dict):
    """
    One section of the bot's configuration, converted to Python values.

    Values are reachable as keys or as attributes (``section.prefix`` is ``section['prefix']``).  Subclasses do their
    parsing and validation in :meth:`read`.
    """
    def __init__(self, section):
        """
        :param section: The :class:`configparser.SectionProxy` holding the raw values.
        """
        super().__init__()
        self.read(section)

    def read(self, section):
        """
        Fills in our values from the raw section.  Raises :class:`ValueError` for anything unusable.

        :param section: The :class:`configparser.SectionProxy` holding the raw values.
        """
        pass

    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError:
            raise AttributeError(item)

    def __delattr__(self, item):
        try:
            del self[item]
        except KeyError:
            raise AttributeError(item)

    __setattr__ = dict.__setitem__


def split_list(value):
    """Splits a comma separated config value, dropping blank items."""
    return [item.strip() for item in value.split(',') if item.strip()]


def parse_server(text, default_port=6667):
    """
    Parses one entry of the ``server`` setting.

    ``irc.example.net`` -> ``{'hostname': 'irc.example.net', 'port': 6667, 'tls': False}``

    ``irc.example.net:+6697`` -> ``{'hostname': 'irc.example.net', 'port': 6697, 'tls': True}``

    A ``/`` may be used in place of the ``:``.  A leading ``+`` on the port enables TLS.
    """
    hostname, port = chainbot.util.pad(re.split(r'[/:]', text, 1), 2)
    port = port or str(default_port)
    return {'hostname': hostname, 'port': int(port), 'tls': port.startswith('+')}


def parse_channel(text):
    """
    Parses one entry of the ``channels`` setting, either ``#channel`` or ``#channel=key``.
    """
    channel, password = chainbot.util.pad(text.split('=', 1), 2)
    return {'channel': channel, 'password': password}


#: Client certificate settings passed straight through to pydle.
TLS_OPTIONS = ('tls_client_cert', 'tls_client_cert_key', 'tls_client_cert_password')


class MainConfigSection(ConfigSection):
    """
    The ``[main]`` section: identity, servers, channels and output settings.
    """
    # noinspection PyAttributeOutsideInit
    def read(self, section):
        self.nicknames = re.split(r'[\s,]+', section.get('nick', 'chainbot').strip())
        primary = self.nicknames[0]
        self.username = section.get('username', primary)
        self.realname = section.get('realname', primary)
        self.prefix = section.get('prefix', '!')
        self.servers = [parse_server(server) for server in split_list(section.get('server', ''))]
        self.channels = [parse_channel(channel) for channel in split_list(section.get('channels', ''))]
        self.wrap_length = section.getint('wrap_length', 400)
        self.wrap_indent = section.get('wrap_indent', '...')
        self.workers = section.getint('workers', 4)
        if self.workers < 1:
            raise ValueError('workers must be at least 1')
        for key in TLS_OPTIONS:
            self[key] = section.get(key)


class ChainConfigSection(ConfigSection):
    """
    The ``[chain]`` section: command chain syntax and dispatch messages.

    Every syntax character must be a single character, and no two may be the same (except the two quote characters).
    """
    # noinspection PyAttributeOutsideInit
    def read(self, section):
        defaults = ChainSyntax()
        characters = {name: section.get(name, getattr(defaults, name)) for name in ChainSyntax.CHARACTERS}
        self.syntax = ChainSyntax(
            max_depth=section.getint('max_depth', defaults.max_depth),
            max_repeats=section.getint('max_repeats', defaults.max_repeats),
            strict_quotes=section.getboolean('strict_quotes', defaults.strict_quotes),
            max_commands=section.getint('max_commands', defaults.max_commands),
            **characters
        )
        self.missing_message = section.get('missing_message', '') or None
        self.help_command = section.get('help_command', 'help') or None


class Config:
    """
    Bot configuration.

    Raw values live in a :class:`configparser.ConfigParser`; each known section is converted by its own
    :class:`ConfigSection` subclass and is reachable as an attribute (``config.main``, ``config.chain``).
    """
    def __init__(self, filename=None, data=None):
        """
        :param filename: INI file to load.
        :param data: INI text or a dict of sections, loaded before `filename`.
        """
        # Messages may legitimately contain '%'.
        self._parser = configparser.ConfigParser(interpolation=None)
        self.sections = {}
        if data:
            self.read_data(data)
        if filename:
            self.read_file(filename)

        self.section('main', MainConfigSection)
        self.section('chain', ChainConfigSection)

    def section(self, name, class_=None):
        """
        Converts section `name` with `class_`, unless that section has already been converted.  Missing sections are
        treated as empty.

        Can be used as a class decorator if `class_` is omitted.

        :param name: Section name.
        :param class_: A :class:`ConfigSection` subclass.
        """
        if class_ is None:
            return functools.partial(self.section, name)
        if name in self.sections:
            return class_
        if not self._parser.has_section(name):
            self._parser.add_section(name)
        self.sections[name] = class_(self._parser[name])
        return class_

    def read_file(self, filename):
        """Loads an INI file.  A missing file is ignored."""
        self._parser.read(filename)

    def read_data(self, data):
        """
        Loads configuration from memory.

        :param data: INI text, or a dict mapping section names to dicts of values.
        """
        if isinstance(data, dict):
            self._parser.read_dict(data)
        else:
            self._parser.read_string(data)

    def __getattr__(self, item):
        try:
            return self.__dict__['sections'][item]
        except KeyError:
            raise AttributeError(item)

    def __getitem__(self, item):
        return self.sections[item]


class Bot(pydle.Client):
    """
    An IRC bot that runs command chains.

    Every message starting with the configured prefix is treated as a command chain.  Each chain runs on its own task
    in a thread pool, so a slow command never holds up other chains or the connection.
    """
    def __init__(self, config=None, filename=None, data=None, registry=None, **kwargs):
        """
        :param config: A :class:`Config`.  If omitted, one is built from `filename` and `data`.
        :param filename: INI file for a new :class:`Config`.
        :param data: INI text or dict for a new :class:`Config`.
        :param registry: :class:`Registry` holding our commands.  A new one is created if omitted.
        :param kwargs: Passed on to :class:`pydle.Client`, taking priority over configured values.
        """
        self.config = config if config is not None else Config(filename=filename, data=data)
        main = self.config.main
        chain = self.config.chain
        self.event_factory = kwargs.pop('event_factory', Event)
        self.server_index = -1

        identity = dict(
            nickname=main.nicknames[0], fallback_nicknames=main.nicknames[1:],
            username=main.username, realname=main.realname,
        )
        identity.update((key, main[key]) for key in TLS_OPTIONS)
        identity.update(kwargs)
        super().__init__(**identity)

        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=main.workers, thread_name_prefix='chain')
        self.io_loop = None

        if registry is None:
            registry = Registry(prefix=re.escape(main.prefix), missing_message=chain.missing_message)
        self.command_registry = registry
        if chain.help_command and registry.lookup(chain.help_command) is None:
            chainbot.modules.core.help_command.export(registry, name=chain.help_command)

        self.textwrapper = textwrap.TextWrapper(
            width=main.wrap_length, subsequent_indent=main.wrap_indent, replace_whitespace=False, tabsize=4
        )

    @contextlib.contextmanager
    def log_exceptions(self):
        """
        Context manager that logs any exception raised inside it instead of letting it escape.

        Usage::

            with bot.log_exceptions():
                risky()
        """
        try:
            yield None
        except Exception:
            logger.exception("Unhandled exception")

    def wraptext(self, text):
        """Wordwraps text, keeping its line breaks.  Blank lines are dropped."""
        lines = []
        for line in text.replace('\r', '').split('\n'):
            lines.extend(self.textwrapper.wrap(line))
        return lines

    def command(self, *args, **kwargs):
        """
        :func:`chainbot.commands.command` registering with our registry unless told otherwise.
        """
        kwargs.setdefault('registry', self.command_registry)
        return chainbot.commands.command(*args, **kwargs)

    async def connect(self, hostname=None, **kwargs):
        """
        Connects to `hostname`, or if that is None, to the next configured server in turn.
        """
        servers = self.config.main.servers
        if hostname is None and servers:
            self.server_index = (self.server_index + 1) % len(servers)
            kwargs.update(servers[self.server_index])
        else:
            kwargs['hostname'] = hostname
        logger.info("Connecting to {}:{}...".format(kwargs['hostname'], kwargs.get('port')))
        return await super().connect(**kwargs)

    async def on_connect(self):
        """
        Joins the configured channels.
        """
        await super().on_connect()
        logger.info("Connected.")
        self.io_loop = tornado.ioloop.IOLoop.current()
        for channel in self.config.main.channels:
            try:
                await self.join(**channel)
            except pydle.AlreadyInChannel:
                pass

    def respond(self, target, message, notice=False):
        """
        Sends a message.  Safe to call from any thread.

        :param target: Recipient
        :param message: Message text.  May contain newlines, which will be split into multiple messages.
        :param notice: If True, sends NOTICEs instead of PRIVMSGs.
        """
        self.io_loop.add_callback(self.send_lines, target, message, notice)

    async def send_lines(self, target, message, notice=False):
        """
        Wordwraps a message and sends it line by line.

        :param target: Recipient
        :param message: Message text.
        :param notice: If True, sends NOTICEs instead of PRIVMSGs.
        """
        send = self.notice if notice else self.message
        for line in self.wraptext(message):
            await send(target, line)

    @tornado.concurrent.run_on_executor
    def process_chain(self, chain, event):
        """
        Runs a command chain on the thread pool.

        :param chain: Chain text (minus prefix)
        :param event: :class:`Event` for the chain.
        :return: A future resolving to the chain's result.
        """
        return chainbot.commands.process_chain(chain, event, self.command_registry, self.config.chain.syntax)

    async def run_chain(self, chain, event):
        """
        Runs a command chain and sends its result.  Anything the chain raises is logged and goes no further.

        :param chain: Chain text (minus prefix)
        :param event: :class:`Event` for the chain.
        """
        with self.log_exceptions():
            result = await self.process_chain(chain, event)
            text = event.saved_message + (result or '')
            if text.strip():
                event.respond(text)

    def handle_message(self, target, nick, message):
        """
        Handles incoming messages.  Starts a chain if the message is meant for us.

        :param target: Message target
        :param nick: Nickname of sender
        :param message: Message
        :return: The :class:`Event` for the chain that was started, or None.
        """
        if nick == self.nickname:
            return None
        match = self.command_registry.match(message)
        if not match:
            return None
        prefix, chain = match
        if not chain.strip():
            logger.debug("Chain is empty")
            return None

        channel = target if self.is_channel(target) else None
        event = self.event_factory(bot=self, nick=nick, channel=channel, message=message, prefix=prefix, text=chain)
        logger.debug("Parsing command chain {!r} from {!r}".format(chain, nick))
        self.io_loop = tornado.ioloop.IOLoop.current()
        self.io_loop.spawn_callback(self.run_chain, chain, event)
        return event

    async def on_message(self, target, nick, message):
        await super().on_message(target, nick, message)
        self.handle_message(target, nick, message)


class Event(chainbot.commands.Event):
    """
    A command chain triggered by an IRC message.  Responses go back to the channel, or to the sender for private
    messages.
    """
    #: Channel modes treated as roles for permission checks.
    ROLE_MODES = ('q', 'a', 'o', 'h', 'v')

    def __init__(self, prefix=None, text=None, bot=None, nick=None, channel=None, message=None):
        """
        :param prefix: Trigger prefix that matched.
        :param text: Chain text after the prefix.
        :param bot: The :class:`Bot` that received the message.
        :param nick: Sender's nickname.
        :param channel: Channel the message was sent to, or None for private messages.
        :param message: The complete message text.
        """
        super().__init__(prefix=prefix, text=text)
        self.bot = bot
        self.nick = nick
        self.channel = channel
        self.message = message

    def respond(self, message):
        """Sends a message to wherever the chain came from."""
        return self.bot.respond(self.target, message)

    def unotice(self, message):
        """Sends a NOTICE to the sender (not the channel)."""
        return self.bot.respond(self.nick, message, notice=True)

    @property
    def target(self):
        """Where responses go: the channel, or the sender for private messages."""
        return self.channel or self.nick

    @property
    def user(self):
        return self.nick

    @property
    def roles(self):
        """Channel modes the sender holds in the triggering channel (op, voice...)"""
        if not self.channel:
            return ()
        channel = self.bot.channels.get(self.channel)
        if not channel:
            return ()
        modes = channel.get('modes', {})
        return tuple(mode for mode in self.ROLE_MODES if self.nick in (modes.get(mode) or ()))
