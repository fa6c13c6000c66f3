import asyncio
import logging
logging.basicConfig(filename="/tmp/kernelmenu.log", level=logging.DEBUG)
from typing import Optional

import pynvim

from .actions import ActionRegistryBuilder, CommandRegistry
from .console import NvimDisplayArea
from .discovery import discover_kernel_actions
from .documents import DocumentManager, NvimEditor
from .launcher import ConsoleLauncher
from .menu import MenuNode, NvimMenuBar
from .services import ServiceManager
from .web_server import CatalogServer

# Import utilities
from .utils.notifications import notify_user, select_from_choices_sync

# Import core modules
from .core.config import (
    get_autostart,
    get_discovery_timeout,
    get_kernel_ready_timeout,
    get_menu_label,
    get_untitled_dir,
    get_web_server_auto_select_port,
    get_web_server_host,
    get_web_server_port,
)
from .core.async_executor import AsyncExecutor

EXEC_COMMAND = 'KernelMenuExec'


@pynvim.plugin
class KernelMenu:
    """
    Adds a menu of installed Jupyter kernels to Neovim.

    For every kernel the menu offers a new notebook, a new interactive console
    and a new source file for each extension of the kernel's language. The
    entries are generated at startup from the installed kernelspecs.
    """

    def __init__(self, nvim):
        """
        Initialize the plugin with all required components.

        Args:
            nvim: The pynvim.Nvim instance for interacting with Neovim.
        """
        self.nvim = nvim
        self._logger = logging.getLogger("kernelmenu.main")

        self.services = ServiceManager()
        self.commands = CommandRegistry()
        self.display = NvimDisplayArea(nvim)
        self.menu_bar = NvimMenuBar(nvim, exec_command=EXEC_COMMAND)
        self.documents = DocumentManager(
            get_untitled_dir(nvim, self._logger),
            editor=NvimEditor(nvim),
            kernel_lookup=self.services.kernelspecs.get,
        )
        self.launcher = ConsoleLauncher(
            self.services.sessions,
            self.display,
            ready_timeout=get_kernel_ready_timeout(nvim, self._logger),
        )
        self.builder = ActionRegistryBuilder(
            self.commands,
            self.documents,
            self.launcher,
            reporter=self._report_failure,
        )
        self.async_executor = AsyncExecutor(nvim, self._logger)

        self.menu: Optional[MenuNode] = None
        self.web_server: Optional[CatalogServer] = None
        self.web_server_started = False
        self._activated = False
        self._activation_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

        self._logger.info("kernelmenu plugin initialized")

    def _report_failure(self, message: str):
        try:
            self.nvim.async_call(lambda: notify_user(self.nvim, message, level='error'))
        except Exception as e:
            self._logger.error(f"Could not report failure to the user ({message}): {e}")

    async def _activate(self) -> Optional[MenuNode]:
        """
        Start the service layer and build the kernel menu, once.
        """
        async with self._activation_lock:
            if self._activated:
                return self.menu
            self._activated = True

            await self.services.start()
            self.menu = await discover_kernel_actions(
                self.services,
                self.builder,
                self.menu_bar,
                self.commands,
                label=get_menu_label(self.nvim, self._logger),
                timeout=get_discovery_timeout(self.nvim, self._logger),
            )
            if self.menu is None:
                self._report_failure("kernelmenu: no Jupyter kernels could be discovered, see /tmp/kernelmenu.log")
            return self.menu

    @pynvim.autocmd('VimEnter', pattern='*', sync=False)
    def on_vim_enter(self):
        """
        Build the kernel menu when Neovim starts, unless autostart is disabled.
        """
        if not get_autostart(self.nvim, self._logger):
            self._logger.info("Autostart disabled, kernel menu built on first use")
            return
        self.async_executor.execute_sync(self._activate(), "kernel discovery")

    @pynvim.autocmd('VimLeave', sync=True)
    def on_vim_leave(self):
        """
        Schedule cleanup and let Neovim exit immediately.
        """
        self._logger.info("Vim leaving - scheduling async cleanup.")
        try:
            loop = asyncio.get_running_loop()
            asyncio.run_coroutine_threadsafe(self._async_cleanup(), loop)
        except Exception as e:
            self._logger.error(f"Error scheduling VimLeave cleanup: {e}")

    @pynvim.autocmd('BufWipeout', pattern='kernelmenu://*', eval='expand("<abuf>")', sync=False)
    def on_buf_wipeout(self, bnum):
        """
        Shut down the kernel of a console whose buffer was wiped out.
        """
        from .commands.console import close_console_impl
        return self.async_executor.execute_sync(close_console_impl(self, bnum), "console shutdown")

    async def _async_cleanup(self):
        """
        Stop the catalog page and shut down every kernel session.
        """
        async with self._cleanup_lock:
            self._logger.info("Starting async cleanup")

            if self.web_server is not None:
                try:
                    await self.web_server.stop()
                except Exception as e:
                    self._logger.error(f"Error stopping catalog server: {e}")
                finally:
                    self.web_server = None
                    self.web_server_started = False

            try:
                await self.services.shutdown()
                self._logger.info("All kernel sessions shut down.")
            except Exception as e:
                self._logger.error(f"Error shutting down kernel sessions: {e}")

            self._logger.info("Async cleanup completed")

    async def _exec_async(self, name: str):
        await self._activate()
        if not self.commands.has_command(name):
            self.nvim.async_call(lambda: notify_user(self.nvim, f"Unknown kernelmenu command: {name}", level='error'))
            return
        await self.commands.execute(name)

    async def _start_catalog_async(self):
        await self._activate()
        if self.web_server_started:
            url = self.web_server.url
        else:
            self.web_server = CatalogServer(
                host=get_web_server_host(self.nvim, self._logger),
                port=get_web_server_port(self.nvim, self._logger),
                catalog=self.services.kernelspecs,
                commands=self.commands,
                auto_select_port=get_web_server_auto_select_port(self.nvim, self._logger),
            )
            await self.web_server.start()
            self.web_server_started = True
            url = self.web_server.url
        self.nvim.async_call(lambda: notify_user(self.nvim, f"Kernel catalog available at {url}"))

    @pynvim.command(EXEC_COMMAND, nargs=1, complete='customlist,KernelMenuComplete', sync=True)
    def exec_command(self, args):
        """
        Run a generated kernel command by name, e.g. kernelmenu:start-console-python3.
        """
        name = args[0]
        self._logger.info(f"{EXEC_COMMAND} {name} called")
        return self.async_executor.execute_sync(self._exec_async(name), f"command {name}")

    @pynvim.function('KernelMenuComplete', sync=True)
    def complete_command(self, args):
        """
        Complete generated command names for KernelMenuExec.
        """
        arg_lead = args[0] if args else ''
        return [name for name in self.commands.names() if name.startswith(arg_lead)]

    @pynvim.command('KernelMenuSelect', sync=True)
    def select_command(self):
        """
        Pick a generated kernel command from a list and run it.
        """
        commands = self.commands.list_commands()
        if not commands:
            notify_user(self.nvim, "Kernel catalog is not ready yet, try again in a moment.", level='error')
            self.async_executor.execute_sync(self._activate(), "kernel discovery")
            return

        choices = [{'display_name': command.label, 'value': command.name} for command in commands]
        selected_choice = select_from_choices_sync(self.nvim, choices, "Select a kernel action")
        if not selected_choice:
            return

        name = selected_choice['value']
        return self.async_executor.execute_sync(self._exec_async(name), f"command {name}")

    @pynvim.command('KernelMenuSend', range=True, sync=True)
    def send_command(self, range_info):
        """
        Send the given lines to the console of this buffer, or the active console.
        """
        from .commands.console import send_lines_impl
        return self.async_executor.execute_sync(send_lines_impl(self, range_info), "console execution")

    @pynvim.command('KernelMenuInterrupt', sync=True)
    def interrupt_command(self):
        """
        Interrupt the kernel of this buffer's console, or of the active console.
        """
        from .commands.console import interrupt_console_impl
        return self.async_executor.execute_sync(interrupt_console_impl(self), "kernel interrupt")

    @pynvim.command('KernelMenuStatus', sync=True)
    def status_command(self):
        """
        Show the kernel catalog, generated commands and open consoles.
        """
        from .commands.debug import status_command_impl
        return status_command_impl(self)

    @pynvim.command('KernelMenuCatalog', sync=True)
    def catalog_command(self):
        """
        Serve the kernel catalog web page and print its URL.
        """
        return self.async_executor.execute_sync(self._start_catalog_async(), "kernel catalog page")

    @pynvim.command('KernelMenuStop', sync=True)
    def stop_command(self):
        """
        Stop the catalog page and shut down all kernel sessions.
        """
        self.nvim.out_write("Stopping kernelmenu components...\n")
        try:
            loop = asyncio.get_running_loop()
            asyncio.run_coroutine_threadsafe(self._async_cleanup(), loop)
            self.nvim.out_write("kernelmenu cleanup scheduled.\n")
        except RuntimeError:
            self.nvim.err_write("No async event loop available for cleanup.\n")
        except Exception as e:
            self._logger.error(f"Error in KernelMenuStop: {e}")
            self.nvim.err_write(f"Stop error: {e}\n")
