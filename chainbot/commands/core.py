class Event:
    """
    Carries one command chain through parsing and dispatch, and is passed to every command the chain calls.

    This base class knows nothing about where the chain came from.  Subclasses supply :meth:`respond` (the side channel
    used for usage errors and other notices) and, if permissions are in use, :attr:`user` and :attr:`roles`.
    """
    def __init__(self, prefix=None, text=None):
        """
        Creates a new :class:`Event`

        :param prefix: Prefix that triggered the chain.  May be None.
        :param text: Chain text (minus prefix).
        """
        self.prefix = prefix
        self.text = text
        self.name = None
        self.command = None
        self.registry = None
        self._saved = []

    @property
    def full_name(self):
        """Returns the full name of the command currently running.  (Essentially prefix + command)"""
        return (self.prefix or '') + (self.name or '')

    def respond(self, message):
        """
        Sends a user-visible message back to wherever the chain came from.

        :param message: Message text.
        """
        raise NotImplementedError

    def save(self, message):
        """
        Queues a line of text that is sent ahead of the chain's final result.

        :param message: Text to queue.  Converted to str.
        """
        self._saved.append(str(message))

    @property
    def saved_message(self):
        """All text queued with :meth:`save`, one line each."""
        return "".join(line + "\n" for line in self._saved)

    @property
    def user(self):
        """Identifies the caller for permission checks.  None if unknown."""
        return None

    @property
    def roles(self):
        """Roles the caller holds, for permission checks."""
        return ()
