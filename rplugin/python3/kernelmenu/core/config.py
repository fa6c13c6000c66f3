"""
Configuration management utilities for the kernelmenu plugin.

This module contains functions for retrieving plugin configuration from
Neovim global variables with appropriate defaults and error handling.
"""
import logging
from typing import Any


def get_menu_label(nvim: Any, logger: logging.Logger) -> str:
    """
    Get the label of the top-level kernel menu.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        logger: Logger instance for error reporting

    Returns:
        str: The menu label, defaults to 'Available Kernels Menu' if not set.
    """
    try:
        return nvim.vars.get('kernelmenu_menu_label', 'Available Kernels Menu')
    except Exception as e:
        logger.warning(f"Error getting menu label from Neovim variable: {e}")
        return 'Available Kernels Menu'


def get_autostart(nvim: Any, logger: logging.Logger) -> bool:
    """
    Get whether the kernel menu is built automatically on VimEnter.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        logger: Logger instance for error reporting

    Returns:
        bool: True unless disabled.
    """
    try:
        return bool(nvim.vars.get('kernelmenu_autostart', True))
    except Exception as e:
        logger.warning(f"Error getting autostart from Neovim variable: {e}")
        return True


def get_untitled_dir(nvim: Any, logger: logging.Logger) -> str:
    """
    Get the directory new notebooks and files are created in.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        logger: Logger instance for error reporting

    Returns:
        str: The configured directory, or Neovim's working directory if not set.
    """
    try:
        configured = nvim.vars.get('kernelmenu_untitled_dir')
        if configured:
            return configured
        return nvim.funcs.getcwd()
    except Exception as e:
        logger.warning(f"Error getting untitled directory from Neovim, using '.': {e}")
        return '.'


def get_kernel_ready_timeout(nvim: Any, logger: logging.Logger) -> float:
    """
    Get how long a new console waits for its kernel to answer.

    Returns:
        float: Seconds, defaults to 30.
    """
    try:
        return float(nvim.vars.get('kernelmenu_kernel_ready_timeout', 30))
    except Exception as e:
        logger.warning(f"Error getting kernel ready timeout from Neovim variable: {e}")
        return 30.0


def get_discovery_timeout(nvim: Any, logger: logging.Logger) -> float:
    """
    Get how long startup waits for the kernelspec scan.

    Returns:
        float: Seconds, defaults to 60.
    """
    try:
        return float(nvim.vars.get('kernelmenu_discovery_timeout', 60))
    except Exception as e:
        logger.warning(f"Error getting discovery timeout from Neovim variable: {e}")
        return 60.0


def get_web_server_host(nvim: Any, logger: logging.Logger) -> str:
    """
    Get the catalog web page host from Neovim global variable.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        logger: Logger instance for error reporting

    Returns:
        str: The host address for the web server, defaults to '127.0.0.1' if not set.
    """
    try:
        return nvim.vars.get('kernelmenu_web_server_host', '127.0.0.1')
    except Exception as e:
        logger.warning(f"Error getting web server host from Neovim variable: {e}")
        return '127.0.0.1'


def get_web_server_port(nvim: Any, logger: logging.Logger) -> int:
    """
    Get the catalog web page port from Neovim global variable.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        logger: Logger instance for error reporting

    Returns:
        int: The port number for the web server, defaults to 8765 if not set.
    """
    try:
        return nvim.vars.get('kernelmenu_web_server_port', 8765)
    except Exception as e:
        logger.warning(f"Error getting web server port from Neovim variable: {e}")
        return 8765


def get_web_server_auto_select_port(nvim: Any, logger: logging.Logger) -> bool:
    """
    Get the auto_select_port setting from Neovim global variable.

    When enabled, the web server tries subsequent ports if the configured port
    is already in use. Disabled by default so the page never ends up on an
    unexpected port.

    Returns:
        bool: Whether to automatically select an available port, defaults to False.
    """
    try:
        return nvim.vars.get('kernelmenu_web_server_auto_select_port', False)
    except Exception as e:
        logger.warning(f"Error getting auto_select_port from Neovim variable: {e}")
        return False
