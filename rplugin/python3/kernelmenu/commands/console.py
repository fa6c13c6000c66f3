"""
Console commands for the kernelmenu plugin.

These are implementation functions only - decorators are in the main plugin class.
"""

from ..utils.notifications import notify_user


def _prepare_send(plugin, range_info):
    """Collect the console view and code to send, synchronously."""
    try:
        current_bnum = plugin.nvim.current.buffer.number
        start_line, end_line = range_info
        lines = plugin.nvim.current.buffer[start_line - 1:end_line]
    except Exception as e:
        plugin._logger.error(f"Error getting buffer data: {e}")
        notify_user(plugin.nvim, f"Error accessing buffer: {e}", level='error')
        return None, None

    view = plugin.display.view_for_buffer(current_bnum) or plugin.display.active_view
    if view is None:
        notify_user(plugin.nvim, "No console open. Start one from the kernel menu first.", level='error')
        return None, None

    code = '\n'.join(lines)
    if not code.strip():
        notify_user(plugin.nvim, "Nothing to send")
        return None, None

    return view, code


def send_lines_impl(plugin, range_info):
    """
    Send a range of lines to the console of the current buffer, or the active console.

    Args:
        plugin: The main KernelMenu plugin instance
        range_info: (start, end) line numbers, 1-indexed and inclusive

    Returns:
        The coroutine executing the code, or None if there is nothing to send
    """
    view, code = _prepare_send(plugin, range_info)
    if view is None:
        return None

    plugin._logger.debug(f"Sending {len(code)} characters to {view.title}")
    return view.execute(code)


def interrupt_console_impl(plugin):
    """
    Interrupt the kernel of the current buffer's console, or of the active console.

    Returns:
        The coroutine sending the interrupt, or None if no console is open
    """
    try:
        current_bnum = plugin.nvim.current.buffer.number
    except Exception as e:
        plugin._logger.error(f"Error getting current buffer: {e}")
        current_bnum = None

    view = plugin.display.view_for_buffer(current_bnum) or plugin.display.active_view
    if view is None:
        notify_user(plugin.nvim, "No console open to interrupt.", level='error')
        return None

    plugin._logger.info(f"Interrupting {view.title}")
    return view.session.interrupt()


def close_console_impl(plugin, bnum):
    """
    Drop the console shown in a buffer Neovim is wiping out and shut its kernel down.

    Args:
        plugin: The main KernelMenu plugin instance
        bnum: The number of the buffer being wiped

    Returns:
        The coroutine shutting the session down, or None if the buffer held no console
    """
    view = plugin.display.view_for_buffer(int(bnum))
    if view is None:
        return None

    plugin.display.detach(view, wipe=False)
    plugin._logger.info(f"Console buffer {bnum} wiped, shutting down {view.title}")
    return _dispose_view(plugin, view)


async def _dispose_view(plugin, view):
    try:
        await view.dispose(plugin.services.sessions)
    except ValueError as e:
        # Already gone, e.g. after KernelMenuStop.
        plugin._logger.info(f"Session for {view.title} already shut down: {e}")
