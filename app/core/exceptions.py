"""
Errors raised by the queue model.

Every error here is recoverable: the entry it concerns is left untouched and
the caller gets a stable ``code`` it can report.
"""


class QueueError(Exception):
    code = "queue_error"

    def __init__(self, message: str, entry_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.entry_id = entry_id


class InvalidTransition(QueueError):
    code = "invalid_transition"

    def __init__(self, current, target, entry_id: str | None = None):
        super().__init__(f"Cannot move from '{current}' to '{target}'", entry_id)
        self.current = current
        self.target = target


class TerminalEntryError(InvalidTransition):
    code = "terminal_entry"

    def __init__(self, current, entry_id: str | None = None):
        QueueError.__init__(self, f"Entry is {current}; no further updates are accepted", entry_id)
        self.current = current
        self.target = None


class StaleUpdate(QueueError):
    code = "stale_update"


class MalformedPatch(QueueError):
    code = "malformed_patch"

    def __init__(self, message: str, entry_id: str | None = None, errors: list | None = None):
        super().__init__(message, entry_id)
        self.errors = errors or []


class UnknownEntry(QueueError):
    code = "unknown_entry"
