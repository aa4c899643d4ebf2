"""Tests for the command registry and permissions."""

import concurrent.futures

import pytest

from chainbot.commands import Command, Permissions, Registry, InsufficientPermissionError


def make(name, *aliases, **kwargs):
    return Command(lambda event, *args: name, name=name, aliases=list(aliases), **kwargs)


class TestRegistration:
    """Test adding and removing commands."""

    def test_register_and_lookup(self):
        registry = Registry()
        roll = make("roll", "dice")
        registry.register(roll)

        assert registry.lookup("roll") is roll
        assert registry.lookup("DICE") is roll
        assert registry.lookup("  Roll ") is roll
        assert registry.lookup("nope") is None
        assert registry.commands == {roll}

    def test_duplicate_rejected(self):
        """Test a taken name fails and registers nothing."""
        registry = Registry()
        registry.register(make("roll"))
        fresh = make("fresh")

        with pytest.raises(ValueError):
            registry.register(fresh, make("other", "ROLL"))
        assert registry.lookup("fresh") is None
        assert len(registry.commands) == 1

    def test_duplicate_within_one_call(self):
        registry = Registry()

        with pytest.raises(ValueError):
            registry.register(make("a"), make("b", "a"))

    def test_unregister(self):
        registry = Registry()
        roll = make("roll", "dice")
        other = make("other")
        registry.register(roll, other)
        registry.unregister(roll)

        assert registry.lookup("roll") is None
        assert registry.lookup("dice") is None
        assert registry.lookup("other") is other
        assert registry.commands == {other}

    def test_unregister_unknown(self):
        registry = Registry()
        registry.unregister(make("ghost"))

        assert registry.commands == frozenset()

    def test_snapshots_are_read_only(self):
        registry = Registry()
        registry.register(make("roll"))

        with pytest.raises(TypeError):
            registry.aliases["x"] = None

    def test_concurrent_lookups(self):
        """Test lookups keep working while commands are registered from other threads."""
        registry = Registry()
        echo = make("echo")
        registry.register(echo)

        def add(n):
            registry.register(make("cmd{}".format(n)))

        def find(_):
            return registry.lookup("echo") is echo

        with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
            added = [pool.submit(add, n) for n in range(50)]
            found = list(pool.map(find, range(500)))
            for future in added:
                future.result()

        assert all(found)
        assert len(registry.commands) == 51


class TestMatch:
    """Test recognising command lines."""

    def test_default_prefix(self):
        registry = Registry()

        assert registry.match("!roll 2d6") == ("!", "roll 2d6")
        assert registry.match("roll 2d6") is False

    def test_custom_prefix(self):
        registry = Registry(prefix=r"\.")

        assert registry.match(".echo a\nb") == (".", "echo a\nb")
        assert registry.match("!echo") is False

    def test_pattern_without_prefix(self):
        registry = Registry(pattern=r"bot[:,]\s*(?P<text>.*)")

        assert registry.match("bot: echo hi") == (None, "echo hi")

    def test_pattern_needs_text(self):
        with pytest.raises(TypeError):
            Registry(pattern=r"(?P<prefix>!)")


class TestExecute:
    """Test running single commands through the registry."""

    def test_result_conversion(self, registry, event):
        assert registry.execute("count", event, []) == "1"
        assert registry.execute("nothing", event, []) == ""
        assert event.name == "nothing"
        assert event.registry is registry
        assert event.command is registry.lookup("nothing")

    def test_missing(self, registry, event):
        assert registry.execute("ghost", event, []) is None
        assert event.responses == ["The command `ghost` doesn't exist!"]

    def test_missing_message_other_braces(self, registry, event):
        """Test braces other than {command} are sent as written."""
        registry.missing_message = "No {cmd} called {command} {}"

        assert registry.execute("ghost", event, []) is None
        assert event.responses == ["No {cmd} called ghost {}"]

    def test_chain_usable(self, registry, event):
        assert registry.execute("solo", event, [], chained=False) == "solo ok"
        assert registry.execute("solo", event, [], chained=True) is None
        assert event.responses == ["Command `solo` cannot be used in a command chain!"]

    def test_argument_count(self, registry, event, calls):
        assert registry.execute("upper", event, []) is None
        assert registry.execute("upper", event, ["a", "b"]) is None
        assert calls == []
        assert len(event.responses) == 2

    def test_command_errors_propagate(self, registry, event):
        with pytest.raises(RuntimeError):
            registry.execute("boom", event, [])


class TestPermissions:
    """Test permission levels."""

    def test_denied(self, registry, calls, make_event):
        event = make_event(user="mallory")

        assert registry.execute("admin", event, []) is None
        assert calls == []
        assert event.responses == ["You don't have permission to execute command `admin`!"]

    def test_user_level(self, registry, make_event):
        registry.permissions.set_user("Alice", 5)

        assert registry.execute("admin", make_event(user="alice"), []) == "admin ok"

    def test_role_level(self, registry, make_event):
        registry.permissions.set_role("o", 10)
        event = make_event(user="bob", roles=["v", "o"])

        assert registry.execute("admin", event, []) == "admin ok"

    def test_highest_level_wins(self, make_event):
        permissions = Permissions()
        permissions.set_user("bob", 1)
        permissions.set_role("v", 3)
        permissions.set_role("o", 7)

        assert permissions.level(make_event(user="bob", roles=["v", "o"])) == 7
        assert permissions.level(make_event(user="bob")) == 1
        assert permissions.level(make_event()) == 0

    def test_removal(self, make_event):
        permissions = Permissions()
        permissions.set_user("bob", 4)
        permissions.set_user("BOB", None)

        assert permissions.level(make_event(user="bob")) == 0
        assert dict(permissions.users) == {}

    def test_custom_message(self, registry, make_event):
        registry.register(make("secret", permission_level=1, permission_message="Nope."))
        event = make_event()
        registry.execute("secret", event, [])

        assert event.responses == ["Nope."]

    def test_silent(self, registry, make_event):
        registry.register(make("hidden", permission_level=1, permission_message=False))
        event = make_event()

        assert registry.execute("hidden", event, []) is None
        assert event.responses == []

    def test_error_message(self):
        error = InsufficientPermissionError(command=make("kick"))

        assert str(error) == "You don't have permission to execute command `kick`!"
