import asyncio
import logging
from typing import Optional

from .errors import DiscoveryFailure
from .menu import MenuNode, build_menu

logger = logging.getLogger("kernelmenu.discovery")


async def discover_kernel_actions(
    services,
    builder,
    menu_bar,
    commands=None,
    label: str = "Available Kernels Menu",
    timeout: Optional[float] = None,
) -> Optional[MenuNode]:
    """
    Build the kernel menu from one snapshot of the kernel catalog.

    Waits for the service layer, then for the kernelspec scan, then registers
    the actions of every kernel and attaches the menu once. Kernels installed
    later are not picked up.

    Args:
        services: ServiceManager providing ready() and kernelspecs
        builder: ActionRegistryBuilder registering the commands
        menu_bar: NvimMenuBar the menu is attached to
        commands: CommandRegistry used for menu labels
        label: Label of the root menu
        timeout: Seconds to wait for each readiness signal, None to wait forever

    Returns:
        MenuNode or None: The attached menu, None if discovery failed
    """
    try:
        await asyncio.wait_for(services.ready(), timeout)
        await asyncio.wait_for(services.kernelspecs.ready(), timeout)
    except asyncio.TimeoutError:
        logger.error(f"Kernel discovery timed out after {timeout}s; no kernel menu will be built")
        return None
    except DiscoveryFailure as e:
        logger.error(f"Kernel discovery failed: {e}")
        return None

    kernels = []
    actions = {}
    for kernel in services.kernelspecs.list_descriptors():
        # Duplicate catalog entries register nothing new and get no second submenu
        registered = builder.register_actions_for(kernel)
        if kernel.identity not in actions:
            kernels.append(kernel)
            actions[kernel.identity] = registered

    menu = build_menu(kernels, actions, commands, label=label)
    menu_bar.add_menu(menu)
    logger.info(f"Kernel menu built for {len(kernels)} kernels")
    return menu
