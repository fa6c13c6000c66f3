"""
Integration tests for kernelmenu against a real Jupyter installation.

These tests start real kernels and are skipped when ipykernel is missing.
"""
import pytest
import asyncio
import sys
import os
from unittest.mock import Mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'rplugin', 'python3'))

from kernelmenu.actions import ActionRegistryBuilder, CommandRegistry
from kernelmenu.catalog import KernelSpecCatalog
from kernelmenu.discovery import discover_kernel_actions
from kernelmenu.kernel_session import KernelSessionManager
from kernelmenu.launcher import ConsoleLauncher, LaunchState
from kernelmenu.services import ServiceManager


pytestmark = [pytest.mark.integration, pytest.mark.requires_jupyter]


@pytest.mark.asyncio
async def test_catalog_lists_installed_kernels():
    """Test the real kernelspec scan finds at least one kernel."""
    catalog = KernelSpecCatalog()

    await catalog.refresh()
    await catalog.ready()

    descriptors = catalog.list_descriptors()
    assert descriptors
    assert all(d.identity for d in descriptors)


@pytest.mark.asyncio
async def test_discovery_builds_menu_for_installed_kernels():
    services = ServiceManager()
    commands = CommandRegistry()
    builder = ActionRegistryBuilder(commands, Mock(), Mock())
    menu_bar = Mock()

    await services.start()
    menu = await discover_kernel_actions(services, builder, menu_bar, commands, timeout=60)

    assert menu is not None
    assert len(menu.children) == len(services.kernelspecs.list_descriptors())
    for descriptor in services.kernelspecs.list_descriptors():
        assert f"kernelmenu:start-console-{descriptor.identity}" in commands
    menu_bar.add_menu.assert_called_once_with(menu)


@pytest.mark.asyncio
async def test_console_launch_and_execute():
    """Test a console for python3 comes up ready and shows kernel output."""
    sessions = KernelSessionManager()
    display = Mock()
    launcher = ConsoleLauncher(sessions, display, ready_timeout=60)

    try:
        launch = await launcher.launch_console("python3")
        assert launch.state is LaunchState.VIEW_ATTACHED, launch.error

        view = launch.view
        await view.execute("print('kernelmenu integration')")
        for _ in range(100):
            if "kernelmenu integration" in view.lines:
                break
            await asyncio.sleep(0.1)

        assert "kernelmenu integration" in view.lines
        display.attach.assert_called_once_with(view)
    finally:
        await sessions.shutdown_all_sessions()


@pytest.mark.asyncio
async def test_console_launch_for_missing_kernel():
    sessions = KernelSessionManager()
    display = Mock()
    launcher = ConsoleLauncher(sessions, display, ready_timeout=5)

    launch = await launcher.launch_console("no-such-kernel-installed")

    assert launch.failed
    display.attach.assert_not_called()
    assert sessions.sessions == {}


if __name__ == "__main__":
    pytest.main([__file__])
