"""
Run a child process with resolved variables layered over the inherited environment.
"""

import logging
import os
import subprocess
from typing import Dict, Mapping, Optional, Sequence

from .constants import ERROR_COMMAND_NOT_FOUND, ERROR_NO_COMMAND
from .exceptions import RunnerError, ValidationError

logger = logging.getLogger(__name__)


def build_environment(
    extra_env: Mapping[str, str], base_env: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Inherited environment with ``extra_env`` overriding it."""
    env = dict(os.environ if base_env is None else base_env)
    env.update(extra_env)
    return env


def run_command(cmd: Sequence[str], extra_env: Mapping[str, str]) -> int:
    """
    Run ``cmd`` and wait for it to exit.

    Args:
        cmd: Program and arguments
        extra_env: Variables to add to (or override in) the inherited environment

    Returns:
        The child's exit code, or 1 if it was terminated by a signal

    Raises:
        ValidationError: If no command is given
        RunnerError: If the program cannot be started
    """
    if not cmd:
        raise ValidationError(ERROR_NO_COMMAND)

    program = cmd[0]
    # Names only; values are secrets
    logger.debug(
        "Running %s with %d injected variables: %s",
        program,
        len(extra_env),
        ", ".join(sorted(extra_env)),
    )
    try:
        completed = subprocess.run(list(cmd), env=build_environment(extra_env), check=False)
    except FileNotFoundError as e:
        raise RunnerError(ERROR_COMMAND_NOT_FOUND.format(program=program), e)
    except PermissionError as e:
        raise RunnerError(f"Permission denied running {program}", e)

    code = completed.returncode
    if code < 0:
        logger.warning("%s terminated by signal %d", program, -code)
        return 1
    return code
