"""
Status command for the kernelmenu plugin.
"""


def status_command_impl(plugin):
    """
    Implementation for showing the kernel catalog, generated commands and consoles.

    Args:
        plugin: The main KernelMenu plugin instance
    """
    try:
        services = plugin.services
        if not services.kernelspecs.is_ready:
            catalog_status = "not scanned yet"
        else:
            catalog_status = f"{len(services.kernelspecs.list_descriptors())} kernels"

        menu_status = "attached" if plugin.menu is not None else "not built"
        server_status = f"running ({plugin.web_server.url})" if plugin.web_server_started else "stopped"
        sessions = services.sessions.list_sessions()

        status_msg = f"""kernelmenu Status:
  Kernel Catalog: {catalog_status}
  Menu: {menu_status}
  Generated Commands: {len(plugin.commands)}
  Consoles: {len(plugin.display.views)} open, {len(sessions)} sessions
  Catalog Page: {server_status}
"""

        if services.kernelspecs.is_ready:
            descriptors = services.kernelspecs.list_descriptors()
            if descriptors:
                status_msg += "\nKernels:\n"
                for descriptor in descriptors:
                    status_msg += f"  {descriptor.identity}: {descriptor.display_name} ({descriptor.language or 'unknown'})\n"

        if sessions:
            status_msg += "\nSessions:\n"
            for info in sessions.values():
                state = "ready" if info['is_ready'] else "starting"
                status_msg += f"  {info['short_id']}: {info['kernel_name']} {info['path']} [{state}]\n"

        plugin.nvim.out_write(status_msg)

    except Exception as e:
        plugin._logger.error(f"Error in KernelMenuStatus: {e}")
        plugin.nvim.err_write(f"Status error: {e}\n")
