import asyncio
import logging
from typing import Optional

from . import catalog
from .catalog import KernelSpecCatalog
from .errors import DiscoveryFailure
from .kernel_session import KernelSessionManager


class ServiceManager:
    """
    The service layer the plugin talks to: kernelspecs and kernel sessions.

    ready() resolves once jupyter_client is usable; kernelspecs.ready()
    resolves later, once the kernelspec scan started by start() completes.
    """

    def __init__(
        self,
        kernelspecs: Optional[KernelSpecCatalog] = None,
        sessions: Optional[KernelSessionManager] = None,
    ):
        self.kernelspecs = kernelspecs or KernelSpecCatalog()
        self.sessions = sessions or KernelSessionManager()
        self._ready = asyncio.Event()
        self._error: Optional[BaseException] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger("kernelmenu.services")

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and self._error is None

    async def start(self):
        """
        Bring the service layer up and schedule the kernelspec scan.

        Calling start() again after a successful start does nothing.
        """
        if self._ready.is_set():
            return

        try:
            if not catalog.JUPYTER_CLIENT_AVAILABLE:
                raise DiscoveryFailure(
                    "jupyter_client is not installed or imports failed. Please install it to use kernelmenu."
                )
            self._refresh_task = asyncio.create_task(self.kernelspecs.refresh())
            self._logger.info("Service layer ready, kernelspec scan scheduled")
        except Exception as e:
            self._logger.error(f"Service layer failed to start: {e}")
            self._error = e
        finally:
            self._ready.set()

    async def ready(self):
        """Wait until start() has run."""
        await self._ready.wait()
        if self._error is not None:
            raise DiscoveryFailure(f"Service layer unavailable: {self._error}") from self._error

    async def shutdown(self):
        """Stop all kernel sessions."""
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
        await self.sessions.shutdown_all_sessions()
