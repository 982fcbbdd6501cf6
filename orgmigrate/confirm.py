"""Continue/abort decisions when a step fails."""

import logging
from typing import Callable

logger = logging.getLogger(__name__)

# Receives the question, returns True to continue the run.
Confirm = Callable[[str], bool]


def prompt_confirm(question: str) -> bool:
    """Ask on the terminal. Anything but y/yes aborts."""
    try:
        answer = input(f"{question} (y/n) ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def always_continue(question: str) -> bool:
    logger.info(f"{question} -> continuing")
    return True


def always_abort(question: str) -> bool:
    logger.info(f"{question} -> aborting")
    return False
