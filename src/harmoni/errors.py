"""Exceptions raised by harmoni."""

from __future__ import annotations


class HarmoniError(Exception):
    """Base class for all harmoni errors."""

    pass


class UnknownFormatError(HarmoniError):
    """Raised when a format name is not in the format registry."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown config format {name!r} (available: {', '.join(available) or 'none'})"
        )


class EventDispatchError(HarmoniError):
    """One or more change listeners raised while handling a change.

    Raised after every listener has been given the change, so a failing
    listener never prevents the others from running. The configuration
    state is already committed when this is raised.

    Attributes:
        failures: (listener label, exception) pairs in invocation order.
    """

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        labels = ", ".join(f"{label}: {exc!r}" for label, exc in self.failures)
        super().__init__(f"{len(self.failures)} listener(s) failed: {labels}")

    @property
    def exceptions(self) -> list[BaseException]:
        """The listener exceptions without their labels."""
        return [exc for _, exc in self.failures]
