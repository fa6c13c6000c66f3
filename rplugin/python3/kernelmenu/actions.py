"""
Generated per-kernel actions and the command registry they live in.

Every installed kernel gets three kinds of action: start a notebook, start a
console, and create a file for each extension of the kernel's language.
Command names are derived from GeneratedAction only, so two kernels with
distinct names can never collide.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .catalog import KernelDescriptor
from .errors import RegistrationConflict
from .languages import LanguageRegistry, resolve_extensions

COMMAND_PREFIX = "kernelmenu:"

Reporter = Callable[[str], None]


class ActionKind(enum.Enum):
    OPEN_DOCUMENT = "start-notebook"
    OPEN_CONSOLE = "start-console"
    OPEN_FILE = "open-file"


@dataclass(frozen=True)
class GeneratedAction:
    """One menu action for one kernel."""

    kind: ActionKind
    kernel: str
    extension: Optional[str] = None

    def __post_init__(self):
        if (self.kind is ActionKind.OPEN_FILE) != (self.extension is not None):
            raise ValueError(f"{self.kind.name} action for {self.kernel} has extension {self.extension!r}")

    @property
    def command_name(self) -> str:
        name = f"{COMMAND_PREFIX}{self.kind.value}-{self.kernel}"
        if self.extension is not None:
            name += f"-{self.extension}"
        return name

    @property
    def label(self) -> str:
        if self.kind is ActionKind.OPEN_DOCUMENT:
            return f"New {self.kernel} notebook"
        if self.kind is ActionKind.OPEN_CONSOLE:
            return f"New {self.kernel} console"
        return f"{self.extension} file"


@dataclass
class Command:
    name: str
    label: str
    execute: Callable[[], Awaitable[None]]
    action: Optional[GeneratedAction] = None


class CommandRegistry:
    """
    Name-keyed registry of executable commands.
    """

    def __init__(self):
        self._commands: Dict[str, Command] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    def has_command(self, name: str) -> bool:
        return name in self._commands

    def add_command(
        self,
        name: str,
        label: str,
        execute: Callable[[], Awaitable[None]],
        action: Optional[GeneratedAction] = None,
    ) -> Command:
        """
        Register a command.

        Raises:
            RegistrationConflict: If a command with this name already exists
        """
        if name in self._commands:
            raise RegistrationConflict(name)
        command = Command(name=name, label=label, execute=execute, action=action)
        self._commands[name] = command
        return command

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def names(self) -> List[str]:
        return list(self._commands)

    def list_commands(self) -> List[Command]:
        return list(self._commands.values())

    async def execute(self, name: str):
        """
        Run a registered command.

        Raises:
            KeyError: If no command has this name
        """
        if name not in self._commands:
            raise KeyError(f"Unknown command '{name}'")
        await self._commands[name].execute()


class ActionRegistryBuilder:
    """
    Turns kernel descriptors into registered commands.

    Args:
        commands: Registry receiving the generated commands
        documents: DocumentManager used by notebook and file actions
        launcher: ConsoleLauncher used by console actions
        reporter: Called with a one-line message when an action fails
        languages: Language registry; the pygments one if omitted
        untitled_path: Directory, relative to the document root, for new files
    """

    def __init__(
        self,
        commands: CommandRegistry,
        documents,
        launcher,
        reporter: Optional[Reporter] = None,
        languages: Optional[LanguageRegistry] = None,
        untitled_path: str = ".",
    ):
        self.commands = commands
        self.documents = documents
        self.launcher = launcher
        self.reporter = reporter
        self.languages = languages
        self.untitled_path = untitled_path
        self._logger = logging.getLogger("kernelmenu.actions")

    def actions_for(self, kernel: KernelDescriptor) -> Tuple[GeneratedAction, ...]:
        """The document, console and per-extension file actions for a kernel."""
        actions = [
            GeneratedAction(ActionKind.OPEN_DOCUMENT, kernel.identity),
            GeneratedAction(ActionKind.OPEN_CONSOLE, kernel.identity),
        ]
        for extension in resolve_extensions(kernel.language, self.languages):
            actions.append(GeneratedAction(ActionKind.OPEN_FILE, kernel.identity, extension))
        return tuple(actions)

    def register_actions_for(self, kernel: KernelDescriptor) -> Tuple[GeneratedAction, ...]:
        """
        Register every action of a kernel that is not registered yet.

        Running this twice for the same kernel leaves the registry unchanged.

        Returns:
            tuple: All actions of the kernel, in menu order
        """
        actions = self.actions_for(kernel)
        registered = 0
        for action in actions:
            try:
                self.commands.add_command(action.command_name, action.label, self._make_execute(kernel, action), action)
                registered += 1
            except RegistrationConflict:
                self._logger.debug(f"Command {action.command_name} already registered, skipping")

        self._logger.info(f"Registered {registered}/{len(actions)} commands for kernel {kernel.identity}")
        return actions

    def _make_execute(self, kernel: KernelDescriptor, action: GeneratedAction):
        if action.kind is ActionKind.OPEN_DOCUMENT:
            return lambda: self._guarded(action, self._open_document(kernel))
        if action.kind is ActionKind.OPEN_CONSOLE:
            return lambda: self._guarded(action, self._open_console(kernel))
        return lambda: self._guarded(action, self._open_file(kernel, action.extension))

    async def _guarded(self, action: GeneratedAction, coro):
        try:
            await coro
        except Exception as e:
            self._logger.error(f"{action.command_name} failed for kernel {action.kernel}: {e}")
            self._report(f"{action.label} failed: {e}")

    def _report(self, message: str):
        if self.reporter is None:
            return
        try:
            self.reporter(message)
        except Exception as e:
            self._logger.error(f"Failed to report error to user: {e}")

    async def _open_document(self, kernel: KernelDescriptor):
        path = await self.documents.create_untitled(kind="notebook", path=self.untitled_path)
        await self.documents.open_document(path, kind="notebook", kernel=kernel.identity)

    async def _open_console(self, kernel: KernelDescriptor):
        launch = await self.launcher.launch_console(kernel.identity)
        if launch.failed:
            self._report(f"New {kernel.identity} console failed: {launch.error}")

    async def _open_file(self, kernel: KernelDescriptor, extension: str):
        path = await self.documents.create_untitled(
            kind="file", path=self.untitled_path, extension=extension, language=kernel.language
        )
        await self.documents.open_document(path)
