import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from .actions import ActionKind, CommandRegistry, GeneratedAction
from .catalog import KernelDescriptor


@dataclass
class MenuNode:
    """
    A menu entry: either a leaf pointing at a command or a submenu.
    """

    label: str
    command: Optional[str] = None
    children: List["MenuNode"] = field(default_factory=list)

    @property
    def is_submenu(self) -> bool:
        return self.command is None

    def add_item(self, command: str, label: str) -> "MenuNode":
        item = MenuNode(label=label, command=command)
        self.children.append(item)
        return item

    def add_submenu(self, submenu: "MenuNode") -> "MenuNode":
        self.children.append(submenu)
        return submenu

    def find(self, label: str) -> Optional["MenuNode"]:
        for child in self.children:
            if child.label == label:
                return child
        return None

    def leaves(self, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], str]]:
        """Yield (label path, command) for every leaf, depth first."""
        path = prefix + (self.label,)
        if not self.is_submenu:
            yield path, self.command
            return
        for child in self.children:
            yield from child.leaves(path)


def build_menu(
    kernels: Sequence[KernelDescriptor],
    actions: Mapping[str, Sequence[GeneratedAction]],
    commands: Optional[CommandRegistry] = None,
    label: str = "Available Kernels Menu",
) -> MenuNode:
    """
    Build the kernel menu tree mirroring the generated actions.

    Each kernel gets a submenu with its notebook and console entries, followed
    by an "Open a <kernel> file" submenu listing the file actions in resolver
    order. Kernels without file actions get no file submenu.

    Args:
        kernels: Kernel descriptors, in the order they should appear
        actions: Generated actions keyed by kernel identity
        commands: Registry used to look up labels; action labels otherwise
        label: Label of the root menu

    Returns:
        MenuNode: The root menu
    """
    root = MenuNode(label=label)

    def item_label(action: GeneratedAction) -> str:
        command = commands.get(action.command_name) if commands is not None else None
        return command.label if command is not None else action.label

    for kernel in kernels:
        kernel_menu = MenuNode(label=kernel.display_name)
        file_menu = MenuNode(label=f"Open a {kernel.identity} file")

        for action in actions.get(kernel.identity, ()):
            if action.kind is ActionKind.OPEN_FILE:
                file_menu.add_item(action.command_name, item_label(action))
            else:
                kernel_menu.add_item(action.command_name, item_label(action))

        if file_menu.children:
            kernel_menu.add_submenu(file_menu)
        root.add_submenu(kernel_menu)

    return root


def escape_menu_label(label: str) -> str:
    """Escape one menu name component for use in a :menu command."""
    escaped = label.replace("\\", "\\\\")
    escaped = escaped.replace("&", "&&")
    escaped = escaped.replace(".", "\\.")
    escaped = escaped.replace(" ", "\\ ")
    escaped = escaped.replace("|", "\\|")
    return escaped


class NvimMenuBar:
    """
    Attaches MenuNode trees to Neovim's menu system.

    Every leaf becomes an :amenu entry running the plugin's dispatch command
    with the leaf's command name.
    """

    def __init__(self, nvim, exec_command: str = "KernelMenuExec"):
        self.nvim = nvim
        self.exec_command = exec_command
        self._attached: Set[str] = set()
        self._logger = logging.getLogger("kernelmenu.menu")

    def add_menu(self, menu: MenuNode) -> bool:
        """
        Attach a menu tree. A root label is only attached once.

        Returns:
            bool: False if a menu with this root label was already attached
        """
        if menu.label in self._attached:
            self._logger.warning(f"Menu '{menu.label}' is already attached, ignoring")
            return False

        count = 0
        for path, command in menu.leaves():
            name = ".".join(escape_menu_label(part) for part in path)
            self.nvim.command(f"amenu <silent> {name} :{self.exec_command} {command}<CR>")
            count += 1

        self._attached.add(menu.label)
        self._logger.info(f"Attached menu '{menu.label}' with {count} entries")
        return True

    def remove_menu(self, label: str):
        if label not in self._attached:
            return
        self.nvim.command(f"aunmenu {escape_menu_label(label)}")
        self._attached.discard(label)
