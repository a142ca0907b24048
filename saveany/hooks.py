"""Running user-configured shell hooks."""

from __future__ import annotations

import os
import subprocess


def _shell_argv(command: str) -> list[str]:
    if os.name == "nt":
        return ["cmd.exe", "/C", command]
    return ["sh", "-c", command]


def run_hook(command: str) -> None:
    """Run a shell command, inheriting stdout and stderr.

    An empty command does nothing. A non-zero exit status raises
    subprocess.CalledProcessError.
    """
    if not command:
        return
    subprocess.run(_shell_argv(command), check=True)