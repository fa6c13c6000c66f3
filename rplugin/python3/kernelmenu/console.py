import logging
import re
from typing import Callable, Dict, List, Optional

from .errors import SessionNotReadyError

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def _text(value) -> str:
    if isinstance(value, list):
        return "".join(value)
    return value or ""


def format_message(message: dict) -> List[str]:
    """
    Render one IOPub message as console lines.

    Args:
        message: A Jupyter IOPub message

    Returns:
        list: Lines to append, empty for messages the console does not show
    """
    msg_type = message.get("msg_type")
    content = message.get("content", {})

    if msg_type == "execute_input":
        code_lines = _text(content.get("code")).splitlines() or [""]
        count = content.get("execution_count") or " "
        prompt = f"In [{count}]: "
        return [prompt + code_lines[0]] + [" " * (len(prompt) - 5) + "...: " + line for line in code_lines[1:]]

    if msg_type == "stream":
        return _text(content.get("text")).splitlines()

    if msg_type in ("execute_result", "display_data"):
        text = _text(content.get("data", {}).get("text/plain"))
        if not text:
            return []
        lines = text.splitlines()
        if msg_type == "execute_result":
            lines[0] = f"Out[{content.get('execution_count') or ' '}]: {lines[0]}"
        return lines

    if msg_type == "error":
        traceback = content.get("traceback") or [f"{content.get('ename', 'Error')}: {content.get('evalue', '')}"]
        lines = []
        for entry in traceback:
            lines.extend(_ANSI_ESCAPE.sub("", entry).splitlines())
        return lines

    return []


class ConsoleView:
    """
    An interactive console bound to one ready kernel session.
    """

    def __init__(self, session, name: str):
        if not getattr(session, "is_ready", False):
            raise SessionNotReadyError(f"Session for kernel {session.kernel_name} is not ready")

        self.session = session
        self.name = name
        self.bnum: Optional[int] = None
        self.lines: List[str] = [f"# {name} ({session.kernel_name})"]
        self._listeners: List[Callable[[List[str]], None]] = []
        session.add_output_handler(self.handle_message)

    @property
    def title(self) -> str:
        return f"kernelmenu://{self.session.kernel_name}/{self.name}"

    def on_output(self, listener: Callable[[List[str]], None]):
        self._listeners.append(listener)

    def handle_message(self, message: dict):
        lines = format_message(message)
        if not lines:
            return
        self.lines.extend(lines)
        for listener in list(self._listeners):
            listener(lines)

    async def execute(self, code: str) -> str:
        return await self.session.execute(code)

    async def dispose(self, sessions=None):
        """
        Stop listening and shut the session down.

        Args:
            sessions: The KernelSessionManager that owns the session, if any.
                The session is then removed from it as well.
        """
        self._listeners.clear()
        if sessions is not None:
            await sessions.shutdown_session(self.session)
        else:
            await self.session.shutdown()


class NvimDisplayArea:
    """
    Shows console views as scratch buffers in Neovim split windows.
    """

    def __init__(self, nvim):
        self.nvim = nvim
        self.views: Dict[int, ConsoleView] = {}
        self.active_view: Optional[ConsoleView] = None
        self._logger = logging.getLogger("kernelmenu.display")

    def attach(self, view: ConsoleView):
        """
        Open a scratch buffer for the view in a new bottom split.
        """
        self.nvim.command("botright new")
        buffer = self.nvim.current.buffer
        try:
            self.nvim.command("setlocal buftype=nofile")
            self.nvim.command("setlocal bufhidden=hide")
            self.nvim.command("setlocal noswapfile")
            self.nvim.command("setlocal filetype=kernelmenu-console")
            buffer.name = view.title
            buffer[:] = list(view.lines)
        except Exception:
            self.nvim.command(f"bwipeout! {buffer.number}")
            raise

        view.bnum = buffer.number
        self.views[view.bnum] = view
        view.on_output(lambda lines, v=view: self.nvim.async_call(self._append, v, lines))
        self._logger.info(f"Attached {view.title} to buffer {view.bnum}")

    def activate(self, view: ConsoleView):
        """Focus the view's window, reopening it if it was closed."""
        if view.bnum not in self.views:
            raise ValueError(f"{view.title} is not attached")

        winnr = self.nvim.funcs.bufwinnr(view.bnum)
        if winnr == -1:
            self.nvim.command(f"botright sbuffer {view.bnum}")
        else:
            self.nvim.command(f"{winnr}wincmd w")
        self.active_view = view

    def detach(self, view: ConsoleView, wipe: bool = True):
        """
        Forget the view and wipe its buffer. Does nothing for an unattached view.
        Pass wipe=False when Neovim is already wiping the buffer.
        """
        bnum = view.bnum
        if bnum is None:
            return

        self.views.pop(bnum, None)
        view.bnum = None
        if self.active_view is view:
            self.active_view = None
        if not wipe:
            return
        try:
            self.nvim.command(f"bwipeout! {bnum}")
        except Exception as e:
            self._logger.warning(f"Could not wipe console buffer {bnum}: {e}")

    def view_for_buffer(self, bnum: int) -> Optional[ConsoleView]:
        return self.views.get(bnum)

    def _append(self, view: ConsoleView, lines: List[str]):
        if view.bnum is None:
            return

        for buffer in self.nvim.buffers:
            if buffer.number == view.bnum:
                buffer.append(lines)
                return
