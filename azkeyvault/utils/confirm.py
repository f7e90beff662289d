import logging
import sys
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]


def console_confirm(prompt: str) -> bool:
    """Ask on the terminal. Non-interactive sessions always decline."""
    if not sys.stdin or not sys.stdin.isatty():
        logger.warning(f"{prompt} -- no terminal to confirm on, declining")
        return False
    answer = input(f"{prompt} (yes/No) ")
    return answer.strip().lower() in ("y", "yes")


def delete_confirmed(confirm: bool, name: str, type: str,
                     callback: Optional[ConfirmCallback] = None) -> bool:
    if not confirm:
        return True
    ask = callback or console_confirm
    if ask(f"Do you really want to delete the {type} '{name}'?"):
        return True
    logger.info(f"Deletion of {type} '{name}' declined")
    return False
