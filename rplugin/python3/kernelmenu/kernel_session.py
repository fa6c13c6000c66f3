import asyncio
import logging
import queue
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

try:
    from jupyter_client import AsyncKernelManager, AsyncKernelClient

    JUPYTER_CLIENT_AVAILABLE = True
except ImportError:
    # Graceful fallback if jupyter_client is not installed
    AsyncKernelManager = None
    AsyncKernelClient = None
    JUPYTER_CLIENT_AVAILABLE = False


OutputHandler = Callable[[dict], None]


class KernelSession:
    """
    Represents a single kernel process started for a console or notebook.

    Starting the process and waiting for it to answer are separate steps, so
    callers can sequence work that depends on a ready kernel explicitly.
    """

    def __init__(self, kernel_name: str, session_type: str = "console", path: Optional[str] = None):
        """
        Initialize a new kernel session.

        Args:
            kernel_name: Name of the kernelspec to launch
            session_type: 'console' or 'notebook'
            path: Human-readable name of whatever owns the session
        """
        self.kernel_id: str = str(uuid.uuid4())
        self.kernel_name = kernel_name
        self.session_type = session_type
        self.path = path or f"{session_type}_{self.kernel_id[:8]}"
        self.km: Optional[AsyncKernelManager] = None
        self.client: Optional[AsyncKernelClient] = None
        self.listener_task: Optional[asyncio.Task] = None
        self.is_ready = False
        self.created_at = datetime.now()
        self._output_handlers: List[OutputHandler] = []
        self._logger = logging.getLogger(f"kernelmenu.kernel.{self.kernel_id[:8]}")

    async def start(self):
        """
        Launch the kernel process and open its channels.

        This does not wait for the kernel to answer; call wait_for_ready() for that.
        """
        if not JUPYTER_CLIENT_AVAILABLE:
            self._logger.error("jupyter_client import failed - AsyncKernelManager/AsyncKernelClient not available")
            raise RuntimeError(
                "jupyter_client is not installed or imports failed. Please install it to use kernel functionality."
            )

        self.km = AsyncKernelManager(kernel_name=self.kernel_name)
        await self.km.start_kernel()

        self.client = self.km.client()
        self.client.start_channels()  # This is synchronous
        self._logger.info(f"Kernel {self.kernel_id[:8]} (type: {self.kernel_name}) process started")

    async def wait_for_ready(self, timeout: float = 30):
        """
        Wait for the kernel to answer, then start relaying its IOPub messages.

        Args:
            timeout: Seconds to wait before giving up
        """
        if not self.client:
            raise RuntimeError("Kernel client is not available. Call start() first.")

        await self.client.wait_for_ready(timeout=timeout)
        self.is_ready = True
        self.listener_task = asyncio.create_task(self._listen_iopub())
        self._logger.info(f"Kernel {self.kernel_id[:8]} is ready")

    def add_output_handler(self, handler: OutputHandler):
        """Register a callback receiving every IOPub message from this kernel."""
        self._output_handlers.append(handler)

    async def execute(self, code: str) -> str:
        """
        Send code to the kernel.

        Args:
            code: Source to execute

        Returns:
            str: The execute_request message id
        """
        if not self.client or not self.is_ready:
            raise RuntimeError("Kernel client is not available or not ready yet.")

        msg_id = self.client.execute(code)
        self._logger.debug(f"Sent execute_request {msg_id[:8]} to kernel {self.kernel_id[:8]}")
        return msg_id

    async def interrupt(self):
        """Send an interrupt signal to the kernel."""
        if not self.km:
            raise RuntimeError("Kernel manager is not available. Call start() first.")

        self._logger.info(f"Interrupting kernel {self.kernel_id[:8]}")
        await self.km.interrupt_kernel()

    async def shutdown(self):
        """
        Safely shut down the kernel and clean up resources with timeouts.
        """
        self._logger.info(f"Shutting down kernel {self.kernel_id[:8]}")
        self.is_ready = False

        if self.client:
            try:
                self.client.stop_channels()
            except Exception as e:
                self._logger.warning(f"Error stopping channels for {self.kernel_id[:8]}: {e}")

        if self.km:
            try:
                await asyncio.wait_for(self.km.shutdown_kernel(now=True), timeout=2.0)
                self._logger.info(f"Kernel {self.kernel_id[:8]} shut down successfully.")
            except asyncio.TimeoutError:
                self._logger.warning(f"Timeout shutting down kernel {self.kernel_id[:8]}. It may be orphaned.")
            except Exception as e:
                self._logger.error(f"Error during kernel shutdown for {self.kernel_id[:8]}: {e}")

        if self.listener_task and not self.listener_task.done():
            self.listener_task.cancel()
            try:
                await asyncio.wait_for(self.listener_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            except Exception as e:
                self._logger.warning(f"Listener task for {self.kernel_id[:8]} had an error on cleanup: {e}")

        self.client = None
        self.km = None
        self.listener_task = None

    def _dispatch(self, message: dict):
        for handler in list(self._output_handlers):
            try:
                handler(message)
            except Exception as e:
                self._logger.warning(f"Output handler failed for kernel {self.kernel_id[:8]}: {e}")

    async def _listen_iopub(self):
        """
        Listen to the IOPub channel and hand every message to the output handlers.
        """
        if not self.client:
            return

        try:
            self._logger.info(f"Started IOPub listener for kernel {self.kernel_id[:8]}")
            while self.client is not None:
                try:
                    message = await self.client.get_iopub_msg(timeout=1.0)
                except queue.Empty:
                    continue
                self._logger.debug(f"IOPub {message.get('msg_type')} from kernel {self.kernel_id[:8]}")
                self._dispatch(message)

        except asyncio.CancelledError:
            self._logger.info(f"IOPub listener cancelled for kernel {self.kernel_id[:8]}")
            raise
        except Exception as e:
            self._logger.error(f"IOPub listener failed for kernel {self.kernel_id[:8]}: {e}")
        finally:
            self._logger.info(f"IOPub listener stopped for kernel {self.kernel_id[:8]}")


class KernelSessionManager:
    """
    Owns every KernelSession started by the plugin.
    """

    def __init__(self):
        self.sessions: Dict[str, KernelSession] = {}
        self._logger = logging.getLogger("kernelmenu.kernel_manager")

    async def create_session(
        self, kernel_name: str, session_type: str = "console", path: Optional[str] = None
    ) -> KernelSession:
        """
        Start a kernel process for a new session without waiting for it to be ready.

        Args:
            kernel_name: Name of the kernelspec to launch
            session_type: 'console' or 'notebook'
            path: Human-readable name of the session owner

        Returns:
            KernelSession: The started, not yet ready, session
        """
        session = KernelSession(kernel_name, session_type, path)
        try:
            await session.start()
        except Exception as e:
            self._logger.error(f"Failed to start {session_type} session for kernel {kernel_name}: {e}")
            await session.shutdown()
            raise

        self.sessions[session.kernel_id] = session
        self._logger.info(f"Started {session_type} session {session.kernel_id[:8]} ({session.path})")
        return session

    async def wait_for_ready(self, session: KernelSession, timeout: float = 30):
        """Wait for a created session to answer."""
        await session.wait_for_ready(timeout=timeout)

    async def shutdown_session(self, session: Union[KernelSession, str]):
        """
        Shut down one session.

        Args:
            session: The session or its kernel id
        """
        kernel_id = session if isinstance(session, str) else session.kernel_id
        if kernel_id not in self.sessions:
            raise ValueError(f"Session {kernel_id} does not exist")

        await self.sessions.pop(kernel_id).shutdown()
        self._logger.info(f"Shut down session {kernel_id[:8]}")

    async def shutdown_all_sessions(self):
        """
        Shut down all active kernel sessions concurrently.
        """
        if not self.sessions:
            self._logger.info("No sessions to shutdown")
            return

        self._logger.info(f"Shutting down {len(self.sessions)} sessions")
        shutdown_tasks = [session.shutdown() for session in self.sessions.values()]

        try:
            results = await asyncio.gather(*shutdown_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self._logger.error(f"Error during session shutdown: {result}")
        finally:
            self.sessions.clear()
            self._logger.info("All sessions shutdown complete")

    def list_sessions(self) -> Dict[str, Dict]:
        """
        Get information about all active sessions.

        Returns:
            Dict: Session information keyed by kernel id
        """
        result = {}
        for kernel_id, session in self.sessions.items():
            result[kernel_id] = {
                "kernel_id": kernel_id,
                "short_id": kernel_id[:8],
                "kernel_name": session.kernel_name,
                "type": session.session_type,
                "path": session.path,
                "created_at": session.created_at.isoformat(),
                "is_ready": session.is_ready,
            }
        return result
