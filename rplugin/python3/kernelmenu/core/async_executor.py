"""
AsyncExecutor - Standardized async execution patterns for the kernelmenu plugin.

Synchronous pynvim command handlers hand their async work to this class
instead of juggling event loops themselves.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional


class AsyncExecutor:
    """
    Runs coroutines from synchronous pynvim handlers.

    Handles event loop detection, background task scheduling, and error
    reporting for async operations.
    """

    def __init__(self, nvim, logger: Optional[logging.Logger] = None):
        """
        Initialize the AsyncExecutor.

        Args:
            nvim: The pynvim.Nvim instance for interacting with Neovim
            logger: Optional logger instance. If None, will create one.
        """
        self.nvim = nvim
        self._logger = logger or logging.getLogger("kernelmenu.async_executor")

    def _notify_failure(self, error_context: str, error: BaseException):
        from ..utils.notifications import notify_user

        message = f"{error_context} failed: {error}"
        try:
            self.nvim.async_call(lambda: notify_user(self.nvim, message, level="error"))
        except Exception as notify_error:
            self._logger.error(f"Failed to notify user of {error_context} error: {notify_error}")

    async def execute_async(self, coro: Awaitable[Any], error_context: str = "operation") -> Any:
        """
        Execute an async coroutine, logging and reporting any failure.

        Args:
            coro: The coroutine to execute
            error_context: Context string for error messages

        Returns:
            The result of the coroutine execution
        """
        try:
            return await coro
        except Exception as e:
            self._logger.error(f"{error_context} failed: {e}")
            self._notify_failure(error_context, e)
            raise

    def execute_sync(self, coro: Awaitable[Any], error_context: str = "operation") -> Any:
        """
        Execute an async coroutine from a sync context.

        When an event loop is already running (the normal pynvim case) the
        coroutine is scheduled as a background task and None is returned.

        Args:
            coro: The coroutine to execute
            error_context: Context string for error messages

        Returns:
            The result of the coroutine, or None if it was scheduled
        """
        if coro is None:
            return None

        try:
            loop = asyncio.get_event_loop()

            if loop.is_running():
                task = loop.create_task(self.execute_async(coro, error_context))

                def handle_task_exception(task):
                    if not task.cancelled() and task.exception():
                        # execute_async already logged and notified
                        self._logger.debug(f"Background task for {error_context} finished with an error")

                task.add_done_callback(handle_task_exception)
                # pynvim cannot serialize a task, so return None
                return None
            else:
                return loop.run_until_complete(self.execute_async(coro, error_context))

        except RuntimeError:
            # No event loop exists - create new one
            return asyncio.run(self.execute_async(coro, error_context))
