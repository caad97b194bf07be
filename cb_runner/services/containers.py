"""Thin client over a container runtime addressing long-lived containers by name."""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Sequence

from cb_common.errors import ContainerError

logger = logging.getLogger(__name__)


def _find_preserve_args(preserve: Sequence[str]) -> list[str]:
    args: list[str] = []
    for pattern in preserve:
        args.extend(["!", "-name", pattern])
    return args


class ContainerClient:
    """Execute shell scripts and file operations inside named containers."""

    def __init__(self, engine: str = "docker", shell: str = "/bin/bash") -> None:
        self.engine = engine
        self.shell = shell

    def exec_argv(
        self, container: str, argv: Sequence[str], *, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        cmd = [self.engine, "exec", container, *argv]
        logger.debug("Container command: %s", shlex.join(cmd))
        try:
            result = subprocess.run(cmd, check=False, capture_output=True, text=True)
        except OSError as exc:
            raise ContainerError(
                f"Could not run {self.engine}",
                context={"container": container, "command": list(argv)},
                cause=exc,
            ) from exc
        if check and result.returncode != 0:
            raise ContainerError(
                f"Container command failed in '{container}' (rc={result.returncode})",
                context={
                    "container": container,
                    "command": list(argv),
                    "returncode": result.returncode,
                    "stderr": (result.stderr or result.stdout or "")[-2000:],
                },
            )
        return result

    def exec_script(
        self, container: str, script: str, *, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        """Run ``script`` with the configured shell inside ``container``."""
        return self.exec_argv(container, [self.shell, "-c", script], check=check)

    def shell_command(self, container: str, script: str) -> str:
        """Host-side command line that runs ``script`` inside ``container``.

        Used when the exec call itself is part of what gets timed.
        """
        return shlex.join([self.engine, "exec", container, self.shell, "-c", script])

    def copy_tree(self, container: str, src: str, dst: str) -> None:
        """Copy the contents of ``src`` into ``dst`` (both in-container)."""
        self.exec_argv(container, ["mkdir", "-p", dst])
        self.exec_argv(container, ["cp", "-r", f"{src.rstrip('/')}/.", dst])

    def copy_files_flat(self, container: str, src: str, dst: str) -> None:
        """Copy every regular file below ``src`` directly into ``dst``."""
        self.exec_argv(
            container,
            ["find", src, "-type", "f", "-exec", "cp", "-f", "{}", dst, ";"],
        )

    def copy_file(self, container: str, src: str, dst: str) -> None:
        self.exec_argv(container, ["cp", src, dst])

    def purge(self, container: str, path: str) -> None:
        """Delete ``path`` and everything below it."""
        self.exec_argv(container, ["find", path, "-delete"])

    def purge_root(self, container: str, preserve: Sequence[str], root: str = "/") -> None:
        """Delete root entries of ``container`` that do not match ``preserve``."""
        argv = [
            "find",
            root,
            "-mindepth",
            "1",
            "-maxdepth",
            "1",
            *_find_preserve_args(preserve),
            "-exec",
            "rm",
            "-r",
            "{}",
            "+",
        ]
        self.exec_argv(container, argv)
