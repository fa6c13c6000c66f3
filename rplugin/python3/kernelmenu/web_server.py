import asyncio
import errno
import html
import logging
import os
from typing import Dict, List, Optional, Set, Tuple

try:
    from aiohttp import web
except ImportError:
    # Graceful fallback if aiohttp is not installed
    web = None


class CatalogServer:
    """
    Web page listing the installed kernels with their logos and actions.

    Clicking an action runs the same generated command the Neovim menu runs.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8765,
        catalog=None,
        commands=None,
        auto_select_port: bool = False,
        max_port_attempts: int = 10,
    ):
        """
        Initialize the catalog server.

        Args:
            host: Host address to bind the server to
            port: Port number to bind the server to
            catalog: KernelSpecCatalog providing the kernel descriptors
            commands: CommandRegistry holding the generated commands
            auto_select_port: If True, try subsequent ports when the configured
                port is in use. Disabled by default.
            max_port_attempts: Maximum number of ports to try when
                auto_select_port is enabled.
        """
        self.host = host
        self.port = port
        self.catalog = catalog
        self.commands = commands
        self.auto_select_port = auto_select_port
        self.max_port_attempts = max_port_attempts
        self.app = None
        self.runner = None
        self.site = None
        self._pending: Set[asyncio.Task] = set()
        self._logger = logging.getLogger("kernelmenu.web_server")

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> Tuple[bool, Optional[int]]:
        """
        Start the aiohttp web server.

        Returns:
            Tuple[bool, Optional[int]]: (used_fallback_port, original_port), where
                original_port is only set when a fallback port was used.
        """
        if web is None:
            raise RuntimeError("aiohttp is not installed. Please install it to use the kernel catalog page.")

        try:
            self.app = web.Application()
            self.app.router.add_get('/', self._handle_index)
            self.app.router.add_get('/api/kernels', self._handle_kernels_api)
            self.app.router.add_get('/api/kernels/{name}/logo', self._handle_logo)
            self.app.router.add_post('/api/commands/{command}', self._handle_command)

            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            used_fallback, original_port = await self._try_bind_port()
            self._logger.info(f"Catalog server started on {self.url}")
            return used_fallback, original_port

        except Exception as e:
            self._logger.error(f"Failed to start catalog server: {e}")
            await self.stop()
            raise

    async def _try_bind_port(self) -> Tuple[bool, Optional[int]]:
        """
        Bind to the configured port, falling back to later ports if allowed.

        Raises:
            OSError: If binding fails and auto_select_port is disabled, or if
                all attempted ports are in use.
        """
        original_port = self.port

        for attempt in range(self.max_port_attempts):
            try:
                self.site = web.TCPSite(self.runner, self.host, self.port, reuse_address=True)
                await self.site.start()

                used_fallback = self.port != original_port
                return used_fallback, original_port if used_fallback else None

            except OSError as e:
                if e.errno != errno.EADDRINUSE:
                    raise

                if not self.auto_select_port:
                    self._logger.error(
                        f"Port {self.port} is already in use. "
                        "Set g:kernelmenu_web_server_auto_select_port to try other ports."
                    )
                    raise

                self.port += 1
                self._logger.info(
                    f"Port {self.port - 1} in use, trying port {self.port} "
                    f"(attempt {attempt + 2}/{self.max_port_attempts})"
                )

        raise OSError(
            errno.EADDRINUSE,
            f"Could not find an available port after {self.max_port_attempts} attempts "
            f"(tried ports {original_port}-{self.port - 1})"
        )

    async def stop(self):
        """
        Stop the web server and clean up resources.
        """
        self._logger.info("Stopping catalog server...")

        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        self.app = None
        self._logger.info("Catalog server stopped.")

    def _kernel_entries(self) -> List[Dict]:
        descriptors = self.catalog.list_descriptors() if self.catalog else []
        commands = self.commands.list_commands() if self.commands else []

        entries = []
        for descriptor in descriptors:
            entries.append({
                "name": descriptor.identity,
                "display_name": descriptor.display_name,
                "language": descriptor.language,
                "has_logo": descriptor.logo is not None,
                "commands": [
                    {"name": command.name, "label": command.label}
                    for command in commands
                    if command.action is not None and command.action.kernel == descriptor.identity
                ],
            })
        return entries

    async def _handle_index(self, request):
        """
        Serve the kernel grid.
        """
        try:
            cards = []
            for entry in self._kernel_entries():
                name = html.escape(entry["name"])
                logo = f'<img src="/api/kernels/{name}/logo" alt="" width="64" height="64">' if entry["has_logo"] else ""
                buttons = "".join(
                    f'<form method="post" action="/api/commands/{html.escape(command["name"])}">'
                    f'<button type="submit">{html.escape(command["label"])}</button></form>'
                    for command in entry["commands"]
                )
                cards.append(
                    f'<div class="kernel">{logo}<h2>{html.escape(entry["display_name"])}</h2>'
                    f'<p>{html.escape(entry["language"])}</p>{buttons}</div>'
                )

            body = "".join(cards) or "<p>No kernels found. Install ipykernel to get started.</p>"
            page = (
                "<!DOCTYPE html><html><head><title>Available Kernels</title></head>"
                f"<body><h1>Available Kernels</h1>{body}</body></html>"
            )
            return web.Response(text=page, content_type='text/html')

        except Exception as e:
            self._logger.error(f"Error serving index page: {e}")
            return web.Response(text="Internal Server Error", status=500)

    async def _handle_kernels_api(self, request):
        """
        List the kernels and their generated commands as JSON.
        """
        try:
            kernels = self._kernel_entries()
            return web.json_response({"kernels": kernels, "count": len(kernels)})
        except Exception as e:
            self._logger.error(f"Error in kernels API: {e}")
            return web.json_response({"error": str(e)}, status=500)

    async def _handle_logo(self, request):
        name = request.match_info.get('name')
        descriptor = self.catalog.get(name) if self.catalog else None
        if descriptor is None or descriptor.logo is None or not os.path.isfile(descriptor.logo):
            return web.Response(text=f"No logo for kernel {name}", status=404)
        return web.FileResponse(descriptor.logo)

    def _is_cross_origin(self, request) -> bool:
        """True when a browser reports that another site sent the request."""
        if request.headers.get('Sec-Fetch-Site') == 'cross-site':
            return True
        origin = request.headers.get('Origin')
        if not origin:
            return False
        allowed = {self.url}
        if self.host in ('127.0.0.1', '::1', 'localhost'):
            allowed.add(f"http://localhost:{self.port}")
            allowed.add(f"http://127.0.0.1:{self.port}")
        return origin.rstrip('/') not in allowed

    async def _handle_command(self, request):
        """
        Schedule a generated command. The command reports its own failures.

        Form posts from the index page are redirected back to it.
        """
        name = request.match_info.get('command')
        if self._is_cross_origin(request):
            self._logger.warning(f"Refused cross-origin request for command {name}")
            return web.json_response({"error": "Cross-origin request refused"}, status=403)

        if not self.commands or not self.commands.has_command(name):
            self._logger.warning(f"Catalog page requested unknown command {name}")
            return web.json_response({"error": f"Unknown command {name}"}, status=404)

        task = asyncio.create_task(self.commands.execute(name))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._logger.info(f"Catalog page scheduled command {name}")
        if request.content_type == 'application/x-www-form-urlencoded':
            return web.Response(status=303, headers={'Location': '/'})
        return web.json_response({"command": name, "status": "scheduled"}, status=202)
