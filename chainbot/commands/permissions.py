"""Numeric permission levels for users and roles."""
import logging
import threading
import types

__all__ = ['Permissions']

logger = logging.getLogger(__name__)


class Permissions:
    """
    Maps users and roles to integer permission levels.

    A caller's level is the highest of their own level and the levels of every role they hold.  Anyone not listed is
    level 0.  Commands declare the minimum level they need (see :attr:`Command.permission_level`).

    Updates replace the read-only tables wholesale under a lock, so lookups from running chains never need one.

    :ivar users: Read-only mapping of user -> level.
    :ivar roles: Read-only mapping of role -> level.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self.users = types.MappingProxyType({})
        self.roles = types.MappingProxyType({})

    @staticmethod
    def _key(name):
        return name.lower() if isinstance(name, str) else name

    def _update(self, attr, name, level):
        with self._lock:
            data = dict(getattr(self, attr))
            if level is None:
                data.pop(self._key(name), None)
            else:
                data[self._key(name)] = int(level)
            setattr(self, attr, types.MappingProxyType(data))

    def set_user(self, user, level):
        """
        Sets the permission level of a user.

        :param user: User identifier.  Strings are case-insensitive.
        :param level: New level, or None to remove the user.
        """
        logger.debug("Setting permission level of user {!r} to {!r}".format(user, level))
        self._update('users', user, level)

    def set_role(self, role, level):
        """
        Sets the permission level of a role.  Applies to everyone holding the role.

        :param role: Role identifier.  Strings are case-insensitive.
        :param level: New level, or None to remove the role.
        """
        logger.debug("Setting permission level of role {!r} to {!r}".format(role, level))
        self._update('roles', role, level)

    def level(self, event):
        """
        Returns the permission level of whoever triggered `event`.

        :param event: An :class:`Event`.
        """
        users, roles = self.users, self.roles
        level = 0
        if event.user is not None:
            level = users.get(self._key(event.user), 0)
        for role in event.roles:
            level = max(level, roles.get(self._key(role), 0))
        return level

    def allows(self, event, command):
        """
        Returns True if whoever triggered `event` may run `command`.

        :param event: An :class:`Event`.
        :param command: A :class:`Command`.
        """
        if not command.permission_level:
            return True
        return self.level(event) >= command.permission_level
