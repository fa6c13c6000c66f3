"""
Exception types raised by the kernelmenu plugin.

None of these are allowed to escape into Neovim: command handlers catch
them, log them and report a single-line message to the user.
"""


class KernelMenuError(Exception):
    """Base class for all kernelmenu errors."""


class DiscoveryFailure(KernelMenuError):
    """The service layer or the kernelspec scan never became ready."""


class RegistrationConflict(KernelMenuError):
    """A command with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Command '{name}' is already registered")
        self.name = name


class SessionLaunchFailure(KernelMenuError):
    """A console session could not be created, readied or displayed."""


class SessionNotReadyError(SessionLaunchFailure):
    """A console view was requested for a session that is not ready yet."""


class DocumentActionFailure(KernelMenuError):
    """Creating or opening an untitled notebook or file failed."""


class InvalidTransition(KernelMenuError):
    """The console launch state machine received an unexpected event."""

    def __init__(self, state, event):
        super().__init__(f"No transition from {state.name} on {event.name}")
        self.state = state
        self.event = event
