"""
User notification utilities for the kernelmenu plugin.

Helpers for notifying users and asking them to pick from a list, shared by
every command.
"""
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger('kernelmenu.notifications')


def notify_user(nvim: Any, message: str, level: str = 'info') -> None:
    """
    Send a single-line notification to the user.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        message: The message to display to the user
        level: The notification level ('info' or 'error')
    """
    if level == 'info':
        nvim.out_write(message + '\n')
    elif level == 'error':
        nvim.err_write(message + '\n')


def notify_error_after_input(nvim: Any, message: str) -> None:
    """
    Display an error message after an input() prompt without a "Press ENTER" prompt.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        message: The error message to display
    """
    nvim.command('redraw')
    escaped = message.replace("'", "''")
    nvim.command(f"echohl ErrorMsg | echo '{escaped}' | echohl None")


def select_from_choices_sync(nvim: Any, choices: List[Dict[str, str]], prompt_title: str) -> Optional[Dict[str, str]]:
    """
    Present numbered choices to the user and return the selected one.

    Args:
        nvim: The pynvim.Nvim instance for interacting with Neovim
        choices: List of choice dictionaries with 'display_name' and 'value' keys
        prompt_title: Title to display to the user

    Returns:
        The selected choice dictionary or None if cancelled/failed
    """
    if not choices:
        logger.error("No choices provided")
        notify_user(nvim, "No choices available", level='error')
        return None

    if len(choices) == 1:
        return choices[0]

    display_choices = [f"{i+1}. {choice['display_name']}" for i, choice in enumerate(choices)]
    try:
        nvim.out_write(f"{prompt_title}:\n" + "\n".join(display_choices) + "\n")
    except Exception as e:
        logger.error(f"nvim.out_write failed: {e}")
        return None

    try:
        choice_input = nvim.call('input', 'Enter selection number: ')
    except Exception as e:
        logger.error(f"nvim.call('input') failed: {e}")
        return None

    if choice_input is None or (isinstance(choice_input, str) and choice_input.strip() == ''):
        notify_error_after_input(nvim, "Empty input. Selection cancelled.")
        return None

    try:
        choice_idx = int(choice_input) - 1
    except (ValueError, TypeError):
        notify_error_after_input(nvim, f"Invalid input '{choice_input}'. Selection cancelled.")
        return None

    if 0 <= choice_idx < len(choices):
        selected_choice = choices[choice_idx]
        logger.info(f"Selected choice: {selected_choice}")
        return selected_choice

    notify_error_after_input(nvim, f"Invalid selection: number out of range (1-{len(choices)}).")
    return None
