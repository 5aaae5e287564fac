"""Best-effort git metadata for deployment records.

Lookups never raise: an unavailable value comes back as ``None``.
"""

import asyncio
from pathlib import Path

from render_deploy.utils.logging import get_logger

GIT_TIMEOUT_SECONDS = 5


class GitMetadata:
    """Reads commit, branch and user from the local git checkout."""

    def __init__(self, cwd: Path | None = None, timeout: float = GIT_TIMEOUT_SECONDS):
        self.cwd = cwd
        self.timeout = timeout
        self.logger = get_logger("vcs")

    async def _git(self, *args: str) -> str | None:
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=str(self.cwd) if self.cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.logger.debug("vcs.git_unavailable", args=args, error=str(e))
            return None

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            self.logger.debug("vcs.git_timeout", args=args)
            return None

        if process.returncode != 0:
            return None
        value = stdout.decode(errors="replace").strip()
        return value or None

    async def commit(self) -> str | None:
        return await self._git("rev-parse", "HEAD")

    async def branch(self) -> str | None:
        return await self._git("rev-parse", "--abbrev-ref", "HEAD")

    async def user_email(self) -> str | None:
        return await self._git("config", "user.email")
