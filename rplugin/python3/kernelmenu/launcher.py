"""
Console launch state machine.

A launch walks REQUESTED -> SESSION_STARTING -> SESSION_READY -> VIEW_ATTACHED,
or ends in FAILED from any non-terminal state. transition() is the whole
table; ConsoleLauncher performs the effect each transition asks for and feeds
the resulting event back in.
"""
import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .console import ConsoleView
from .errors import InvalidTransition


class LaunchState(enum.Enum):
    REQUESTED = "requested"
    SESSION_STARTING = "session_starting"
    SESSION_READY = "session_ready"
    VIEW_ATTACHED = "view_attached"
    FAILED = "failed"


class LaunchEvent(enum.Enum):
    BEGIN = "begin"
    SESSION_CREATED = "session_created"
    SESSION_READY = "session_ready"
    VIEW_ATTACHED = "view_attached"
    FAILED = "failed"


class LaunchEffect(enum.Enum):
    CREATE_SESSION = "create_session"
    AWAIT_READY = "await_ready"
    ATTACH_VIEW = "attach_view"
    CLEANUP = "cleanup"


TERMINAL_STATES = frozenset({LaunchState.VIEW_ATTACHED, LaunchState.FAILED})

_TRANSITIONS: Dict[Tuple[LaunchState, LaunchEvent], Tuple[LaunchState, Optional[LaunchEffect]]] = {
    (LaunchState.REQUESTED, LaunchEvent.BEGIN): (LaunchState.SESSION_STARTING, LaunchEffect.CREATE_SESSION),
    (LaunchState.SESSION_STARTING, LaunchEvent.SESSION_CREATED): (LaunchState.SESSION_STARTING, LaunchEffect.AWAIT_READY),
    (LaunchState.SESSION_STARTING, LaunchEvent.SESSION_READY): (LaunchState.SESSION_READY, LaunchEffect.ATTACH_VIEW),
    (LaunchState.SESSION_READY, LaunchEvent.VIEW_ATTACHED): (LaunchState.VIEW_ATTACHED, None),
}


def transition(state: LaunchState, event: LaunchEvent) -> Tuple[LaunchState, Optional[LaunchEffect]]:
    """
    Compute the next state and the effect to perform.

    Raises:
        InvalidTransition: If the event is not valid in this state
    """
    if event is LaunchEvent.FAILED and state not in TERMINAL_STATES:
        return LaunchState.FAILED, LaunchEffect.CLEANUP
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


@dataclass
class ConsoleLaunch:
    """Record of one console launch attempt."""

    kernel: str
    name: str
    state: LaunchState = LaunchState.REQUESTED
    history: List[LaunchState] = field(default_factory=lambda: [LaunchState.REQUESTED])
    error: Optional[BaseException] = None
    session: object = None
    view: Optional[ConsoleView] = None

    @property
    def failed(self) -> bool:
        return self.state is LaunchState.FAILED

    @property
    def succeeded(self) -> bool:
        return self.state is LaunchState.VIEW_ATTACHED

    def advance(self, event: LaunchEvent) -> Optional[LaunchEffect]:
        state, effect = transition(self.state, event)
        if state is not self.state:
            self.history.append(state)
        self.state = state
        return effect


class ConsoleLauncher:
    """
    Brings up a console view for a kernel.

    Args:
        sessions: KernelSessionManager creating and readying sessions
        display: NvimDisplayArea showing the views
        ready_timeout: Seconds to wait for a new kernel to answer
        view_factory: Callable building a view from (session, name)
    """

    def __init__(
        self,
        sessions,
        display,
        ready_timeout: float = 30.0,
        view_factory: Callable[..., ConsoleView] = ConsoleView,
    ):
        self.sessions = sessions
        self.display = display
        self.ready_timeout = ready_timeout
        self.view_factory = view_factory
        self._console_counts: Dict[str, int] = defaultdict(int)
        self._logger = logging.getLogger("kernelmenu.launcher")

    def _next_console_name(self, kernel_identity: str) -> str:
        self._console_counts[kernel_identity] += 1
        return f"Console {self._console_counts[kernel_identity]}"

    async def launch_console(self, kernel_identity: str) -> ConsoleLaunch:
        """
        Create a session, wait for it, then attach and focus a console view.

        Never raises; a failed launch is returned in the FAILED state with the
        cause in ``error`` and nothing left attached.

        Args:
            kernel_identity: Name of the kernelspec to start

        Returns:
            ConsoleLaunch: The finished launch record
        """
        launch = ConsoleLaunch(kernel=kernel_identity, name=self._next_console_name(kernel_identity))
        self._logger.info(f"Launching {launch.name} for kernel {kernel_identity}")

        effect = launch.advance(LaunchEvent.BEGIN)
        while effect is not None:
            event = await self._perform(effect, launch)
            if event is None:
                break
            effect = launch.advance(event)

        if launch.succeeded:
            self._logger.info(f"{launch.name} for kernel {kernel_identity} attached")
        return launch

    async def _perform(self, effect: LaunchEffect, launch: ConsoleLaunch) -> Optional[LaunchEvent]:
        if effect is LaunchEffect.CLEANUP:
            await self._cleanup(launch)
            return None

        try:
            if effect is LaunchEffect.CREATE_SESSION:
                launch.session = await self.sessions.create_session(
                    launch.kernel, session_type="console", path=launch.name
                )
                return LaunchEvent.SESSION_CREATED

            if effect is LaunchEffect.AWAIT_READY:
                await self.sessions.wait_for_ready(launch.session, timeout=self.ready_timeout)
                return LaunchEvent.SESSION_READY

            if effect is LaunchEffect.ATTACH_VIEW:
                view = self.view_factory(launch.session, launch.name)
                self.display.attach(view)
                launch.view = view
                self.display.activate(view)
                launch.session = None
                return LaunchEvent.VIEW_ATTACHED

        except Exception as e:
            launch.error = e
            self._logger.error(
                f"Console launch for kernel {launch.kernel} failed during {effect.value}: {e!r}"
            )
            return LaunchEvent.FAILED

        raise ValueError(f"Unknown launch effect {effect}")

    async def _cleanup(self, launch: ConsoleLaunch):
        if launch.view is not None:
            try:
                self.display.detach(launch.view)
            except Exception as e:
                self._logger.error(f"Failed to detach {launch.name} for kernel {launch.kernel}: {e}")
            launch.view = None

        if launch.session is not None:
            try:
                await self.sessions.shutdown_session(launch.session)
            except Exception as e:
                self._logger.error(f"Failed to shut down session for kernel {launch.kernel}: {e}")
            launch.session = None
