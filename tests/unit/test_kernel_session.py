"""
Unit tests for KernelSession and KernelSessionManager classes.
"""
import pytest
import asyncio
import queue
from unittest.mock import Mock, AsyncMock, patch

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'rplugin', 'python3'))

from kernelmenu.kernel_session import KernelSession, KernelSessionManager


def mock_kernel_manager():
    mock_km = AsyncMock()
    mock_client = AsyncMock()
    # Synchronous methods should be regular Mock
    mock_client.start_channels = Mock()
    mock_client.stop_channels = Mock()
    mock_client.execute = Mock(return_value="abcdef123456")
    mock_km.client = Mock(return_value=mock_client)
    return mock_km, mock_client


class TestKernelSession:
    """Test cases for the KernelSession class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.kernel_name = "python3"

    def test_kernel_session_init(self):
        """Test KernelSession initialization."""
        session = KernelSession(self.kernel_name, "console", "Console 1")
        assert session.kernel_name == "python3"
        assert session.session_type == "console"
        assert session.path == "Console 1"
        assert session.kernel_id is not None
        assert session.is_ready is False

    def test_kernel_session_default_path(self):
        session = KernelSession(self.kernel_name)
        assert session.path == f"console_{session.kernel_id[:8]}"

    @pytest.mark.asyncio
    async def test_start_does_not_wait_for_ready(self):
        """Test start() launches the kernel but leaves readiness to wait_for_ready()."""
        session = KernelSession(self.kernel_name)
        mock_km, mock_client = mock_kernel_manager()

        with patch('kernelmenu.kernel_session.AsyncKernelManager', return_value=mock_km) as km_class, \
             patch('kernelmenu.kernel_session.JUPYTER_CLIENT_AVAILABLE', True):
            await session.start()

        km_class.assert_called_once_with(kernel_name="python3")
        mock_km.start_kernel.assert_awaited_once()
        mock_client.start_channels.assert_called_once()
        mock_client.wait_for_ready.assert_not_awaited()
        assert session.is_ready is False

    @pytest.mark.asyncio
    async def test_start_without_jupyter_client(self):
        session = KernelSession(self.kernel_name)

        with patch('kernelmenu.kernel_session.JUPYTER_CLIENT_AVAILABLE', False):
            with pytest.raises(RuntimeError):
                await session.start()

    @pytest.mark.asyncio
    async def test_wait_for_ready(self):
        session = KernelSession(self.kernel_name)
        mock_km, mock_client = mock_kernel_manager()

        with patch('kernelmenu.kernel_session.AsyncKernelManager', return_value=mock_km), \
             patch('kernelmenu.kernel_session.JUPYTER_CLIENT_AVAILABLE', True), \
             patch.object(session, '_listen_iopub', new_callable=AsyncMock):
            await session.start()
            await session.wait_for_ready(timeout=5)

            mock_client.wait_for_ready.assert_awaited_once_with(timeout=5)
            assert session.is_ready is True
            assert session.listener_task is not None
            await session.listener_task

    @pytest.mark.asyncio
    async def test_wait_for_ready_before_start(self):
        session = KernelSession(self.kernel_name)

        with pytest.raises(RuntimeError):
            await session.wait_for_ready()

    @pytest.mark.asyncio
    async def test_execute_requires_ready(self):
        session = KernelSession(self.kernel_name)
        session.client = Mock()

        with pytest.raises(RuntimeError):
            await session.execute("1 + 1")

    @pytest.mark.asyncio
    async def test_execute(self):
        session = KernelSession(self.kernel_name)
        _, mock_client = mock_kernel_manager()
        session.client = mock_client
        session.is_ready = True

        msg_id = await session.execute("1 + 1")

        assert msg_id == "abcdef123456"
        mock_client.execute.assert_called_once_with("1 + 1")

    @pytest.mark.asyncio
    async def test_listener_dispatches_to_handlers(self):
        """Test IOPub messages reach every handler and a failing handler is contained."""
        session = KernelSession(self.kernel_name)
        message = {"msg_type": "stream", "content": {"text": "hi\n"}}
        _, mock_client = mock_kernel_manager()

        async def get_iopub_msg(timeout=None):
            if not received:
                return message
            session.client = None
            raise queue.Empty()

        received = []
        mock_client.get_iopub_msg = get_iopub_msg
        session.client = mock_client
        session.add_output_handler(Mock(side_effect=Exception("handler broke")))
        session.add_output_handler(received.append)

        await session._listen_iopub()

        assert received == [message]

    @pytest.mark.asyncio
    async def test_shutdown(self):
        """Test kernel session shutdown."""
        session = KernelSession(self.kernel_name)
        mock_km, mock_client = mock_kernel_manager()
        session.km = mock_km
        session.client = mock_client
        session.is_ready = True

        await session.shutdown()

        mock_client.stop_channels.assert_called_once()
        mock_km.shutdown_kernel.assert_awaited_once_with(now=True)
        assert session.km is None
        assert session.client is None
        assert session.is_ready is False


class TestKernelSessionManager:
    """Test cases for the KernelSessionManager class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = KernelSessionManager()

    def test_manager_initialization(self):
        assert self.manager.sessions == {}

    def test_managers_are_independent(self):
        assert KernelSessionManager() is not KernelSessionManager()

    @pytest.mark.asyncio
    async def test_create_session(self):
        with patch('kernelmenu.kernel_session.KernelSession') as session_class:
            mock_session = Mock(kernel_id="12345678-aaaa", path="Console 1")
            mock_session.start = AsyncMock()
            session_class.return_value = mock_session

            session = await self.manager.create_session("python3", path="Console 1")

        session_class.assert_called_once_with("python3", "console", "Console 1")
        assert session is mock_session
        assert self.manager.sessions == {"12345678-aaaa": mock_session}

    @pytest.mark.asyncio
    async def test_create_session_failure_is_cleaned_up(self):
        with patch('kernelmenu.kernel_session.KernelSession') as session_class:
            mock_session = Mock(kernel_id="12345678-aaaa")
            mock_session.start = AsyncMock(side_effect=RuntimeError("No such kernel named py"))
            mock_session.shutdown = AsyncMock()
            session_class.return_value = mock_session

            with pytest.raises(RuntimeError):
                await self.manager.create_session("py")

        mock_session.shutdown.assert_awaited_once()
        assert self.manager.sessions == {}

    @pytest.mark.asyncio
    async def test_wait_for_ready_passes_timeout(self):
        mock_session = Mock()
        mock_session.wait_for_ready = AsyncMock()

        await self.manager.wait_for_ready(mock_session, timeout=3)

        mock_session.wait_for_ready.assert_awaited_once_with(timeout=3)

    @pytest.mark.asyncio
    async def test_shutdown_session(self):
        mock_session = Mock(kernel_id="12345678-aaaa")
        mock_session.shutdown = AsyncMock()
        self.manager.sessions["12345678-aaaa"] = mock_session

        await self.manager.shutdown_session(mock_session)

        mock_session.shutdown.assert_awaited_once()
        assert self.manager.sessions == {}

    @pytest.mark.asyncio
    async def test_shutdown_unknown_session(self):
        with pytest.raises(ValueError):
            await self.manager.shutdown_session("missing")

    @pytest.mark.asyncio
    async def test_shutdown_all_sessions_tolerates_errors(self):
        good = Mock(shutdown=AsyncMock())
        bad = Mock(shutdown=AsyncMock(side_effect=Exception("already dead")))
        self.manager.sessions = {"a": good, "b": bad}

        await self.manager.shutdown_all_sessions()

        good.shutdown.assert_awaited_once()
        bad.shutdown.assert_awaited_once()
        assert self.manager.sessions == {}

    def test_list_sessions(self):
        session = KernelSession("python3", "console", "Console 1")
        session.is_ready = True
        self.manager.sessions[session.kernel_id] = session

        info = self.manager.list_sessions()[session.kernel_id]

        assert info["kernel_name"] == "python3"
        assert info["type"] == "console"
        assert info["path"] == "Console 1"
        assert info["short_id"] == session.kernel_id[:8]
        assert info["is_ready"] is True


if __name__ == "__main__":
    pytest.main([__file__])
