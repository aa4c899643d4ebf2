"""Pytest configuration and fixtures for chainbot tests."""

import collections

import pytest

from chainbot.commands import ChainSyntax, Command, Event, Registry


class RecordingEvent(Event):
    """Event that keeps everything sent through respond()."""

    def __init__(self, prefix="!", text=None, user=None, roles=()):
        super().__init__(prefix=prefix, text=text)
        self.responses = []
        self._user = user
        self._roles = tuple(roles)

    def respond(self, message):
        self.responses.append(message)

    @property
    def user(self):
        return self._user

    @property
    def roles(self):
        return self._roles


@pytest.fixture
def event():
    """A fresh recording event."""
    return RecordingEvent()


@pytest.fixture
def syntax():
    """Default chain syntax."""
    return ChainSyntax()


@pytest.fixture
def calls():
    """Ordered list of (command name, arguments) for every command run."""
    return []


@pytest.fixture
def counter():
    """Counts calls per command."""
    return collections.Counter()


@pytest.fixture
def registry(calls, counter):
    """A registry loaded with simple test commands."""
    registry = Registry(missing_message="The command `{command}` doesn't exist!")

    @registry.command("echo", usage="echo [words...]", doc="Echoes its arguments.")
    def echo(event, *words):
        calls.append(("echo", words))
        return " ".join(words)

    @registry.command("say")
    def say(event, *words):
        calls.append(("say", words))
        return " ".join(words)

    def fixed(name, value):
        def fn(event, *args):
            calls.append((name, args))
            return value
        return fn

    registry.register(
        Command(fixed("a", "x"), name="a"),
        Command(fixed("b", "y"), name="b"),
        Command(fixed("c", "z"), name="c"),
    )

    @registry.command("count", max_args=None)
    def count(event, *args):
        counter["count"] += 1
        calls.append(("count", args))
        return counter["count"]

    @registry.command("upper", usage="upper <text>")
    def upper(event, text):
        calls.append(("upper", (text,)))
        return text.upper()

    @registry.command("solo", chain_usable=False)
    def solo(event, *args):
        calls.append(("solo", args))
        return "solo ok"

    @registry.command("boom")
    def boom(event, *args):
        calls.append(("boom", args))
        raise RuntimeError("kaboom")

    @registry.command("admin", permission_level=5)
    def admin(event, *args):
        calls.append(("admin", args))
        return "admin ok"

    @registry.command("nothing")
    def nothing(event, *args):
        calls.append(("nothing", args))

    return registry


@pytest.fixture
def make_event():
    """Factory for recording events with a given user and roles."""
    return RecordingEvent
