"""
Helm wrapper — installs and uninstalls a store's chart release.

Release name and namespace are both the store id. Install does NOT use
--wait: Helm creates the resources and the reconciler decides readiness.
"""

import asyncio
import logging
import shlex

from config import settings
from exceptions import HelmCommandError, ReleaseNotFoundError

logger = logging.getLogger("helm_service")

# helm reports a missing release as "...: release: not found"
_NOT_FOUND_MARKER = "release: not found"


class HelmInstaller:
    def __init__(self, chart_path: str = settings.HELM_CHART_PATH,
                 binary: str = settings.HELM_BINARY) -> None:
        self._chart_path = chart_path
        self._binary = binary

    async def _run(self, args: list[str]) -> str:
        """Execute a Helm CLI command. Raises HelmCommandError on failure."""
        cmd = [self._binary] + args
        logger.info(f"helm> {' '.join(shlex.quote(a) for a in cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise HelmCommandError(f"Unable to run {self._binary}: {e}") from e
        out, err = await proc.communicate()
        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace")
        if stdout:
            logger.debug(f"helm stdout: {stdout[:800]}")
        if proc.returncode != 0:
            message = f"Helm command failed (rc={proc.returncode}): {stderr[:500]}"
            if _NOT_FOUND_MARKER in stderr.lower():
                raise ReleaseNotFoundError(message)
            raise HelmCommandError(message)
        if stderr:
            logger.warning(f"helm stderr: {stderr[:800]}")
        return stdout

    async def install(self, release: str, namespace: str) -> None:
        await self._run(["install", release, self._chart_path, "-n", namespace])
        logger.info(f"Helm release {release} installed in {namespace}")

    async def uninstall(self, release: str, namespace: str) -> bool:
        """Uninstall a release. Returns False if it did not exist."""
        try:
            await self._run(["uninstall", release, "-n", namespace])
        except ReleaseNotFoundError:
            logger.info(f"Helm release {release} not found — skipping uninstall")
            return False
        logger.info(f"Helm release {release} uninstalled")
        return True
