"""Backend that shells out to the `llm` command-line tool."""

import asyncio
import logging

from moa.backends.base import Backend, BackendKind, BackendReply, BackendRequest
from moa.errors import BackendInvocationError

logger = logging.getLogger(__name__)

_DEFAULT_COMMAND = "llm"


class LLMCliBackend(Backend):
    """Runs `llm -m <model> [-s <system>] [-o temperature <t>] <prompt>`."""

    kind = BackendKind.LLM

    def build_command(self, request: BackendRequest) -> list[str]:
        cmd = [self._config.command or _DEFAULT_COMMAND, "-m", request.model]
        if request.system_prompt:
            cmd += ["-s", request.system_prompt]
        if request.temperature is not None:
            cmd += ["-o", "temperature", str(request.temperature)]
        cmd.append(request.prompt)
        return cmd

    async def generate(self, request: BackendRequest) -> BackendReply:
        cmd = self.build_command(request)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise BackendInvocationError(self.name, f"Could not start {cmd[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise BackendInvocationError(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip().splitlines()
            raise BackendInvocationError(
                self.name,
                f"{cmd[0]} exited with {proc.returncode}: {detail[-1] if detail else 'no output'}",
            )

        logger.debug("%s -m %s produced %d bytes", cmd[0], request.model, len(stdout))
        return BackendReply(text=stdout.decode("utf-8", errors="replace"))
