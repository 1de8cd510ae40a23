"""Coding-agent CLI driven over stdin/stdout JSON lines (RPC mode)."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from config.config_loader import WorkerConfig
from pr_review.workers.base import ProgressHandler, WorkerError, WorkerHandle, WorkerSpawner

logger = logging.getLogger(__name__)

# Assistant messages arrive as a single JSON line and can be large.
_STREAM_LIMIT = 16 * 1024 * 1024
_STDERR_TAIL = 2000


def _message_text(message: dict[str, Any]) -> str:
    """Join the text blocks of an assistant message."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = [
        block.get("text", "")
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    return "\n".join(p for p in parts if p)


class RpcAgent(WorkerHandle):
    """A running agent process. One prompt at a time."""

    def __init__(
        self,
        name: str,
        model: str,
        process: asyncio.subprocess.Process,
        config: WorkerConfig,
    ) -> None:
        self._name = name
        self._model = model
        self._process = process
        self._config = config
        self._lock = asyncio.Lock()
        self._stderr_chunks: list[str] = []
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return self._model

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stderr(self) -> str:
        return "".join(self._stderr_chunks)[-_STDERR_TAIL:]

    async def _drain_stderr(self) -> None:
        assert self._process.stderr is not None
        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            decoded = line.decode("utf-8", errors="replace")
            self._stderr_chunks.append(decoded)
            logger.debug("[%s stderr] %s", self._name, decoded.rstrip())

    async def collect_stderr(self, timeout: float = 1.0) -> str:
        """Wait briefly for stderr to reach EOF, then return its tail."""
        try:
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=timeout)
        except TimeoutError:
            pass
        return self.stderr

    async def send(self, prompt: str, on_progress: ProgressHandler | None = None) -> str:
        async with self._lock:
            if self._process.returncode is not None:
                raise WorkerError(
                    self._name, f"Process exited with code {self._process.returncode}: {self.stderr}"
                )
            assert self._process.stdin is not None
            payload = json.dumps({"type": "prompt", "message": prompt}) + "\n"
            try:
                self._process.stdin.write(payload.encode("utf-8"))
                await self._process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise WorkerError(self._name, f"Could not write prompt: {exc}") from exc

            timeout = self._config.send_timeout_sec
            try:
                text = await asyncio.wait_for(self._read_response(on_progress), timeout=timeout)
            except TimeoutError as exc:
                raise WorkerError(self._name, f"Prompt timed out after {timeout}s") from exc

        logger.info("%s responded (%d chars)", self._name, len(text))
        return text

    async def _read_response(self, on_progress: ProgressHandler | None) -> str:
        """Consume events until agent_end; return the last assistant message text."""
        assert self._process.stdout is not None
        last_text = ""
        while True:
            try:
                line = await self._process.stdout.readline()
            except ValueError as exc:
                raise WorkerError(self._name, f"Event line exceeded the stream limit: {exc}") from exc
            if not line:
                raise WorkerError(self._name, f"Output ended before the prompt completed: {self.stderr}")
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("[%s] ignoring non-JSON line: %r", self._name, line[:200])
                continue
            if not isinstance(event, dict):
                continue

            if on_progress:
                on_progress(event)

            event_type = event.get("type")
            if event_type == "message_end":
                message = event.get("message") or {}
                if message.get("role") == "assistant":
                    text = _message_text(message)
                    if text:
                        last_text = text
            elif event_type == "response" and event.get("success") is False:
                raise WorkerError(self._name, f"Prompt rejected: {event.get('error', 'unknown error')}")
            elif event_type == "agent_end":
                return last_text

    async def terminate(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=self._config.terminate_timeout_sec)
            except TimeoutError:
                logger.warning("%s did not exit after SIGTERM, killing", self._name)
                self._process.kill()
                await self._process.wait()
        self._stderr_task.cancel()
        logger.debug("%s terminated (code %s)", self._name, self._process.returncode)


class RpcAgentSpawner(WorkerSpawner):
    """Launches RpcAgent processes from the configured command template."""

    def __init__(self, config: WorkerConfig) -> None:
        self._config = config

    def build_command(self, model: str, thinking: str, system_prompt: str) -> list[str]:
        return [
            part.format(model=model, thinking=thinking, system_prompt=system_prompt)
            for part in self._config.command
        ]

    async def spawn(
        self,
        name: str,
        model: str,
        thinking: str,
        system_prompt: str,
        working_dir: Path,
    ) -> RpcAgent:
        args = self.build_command(model, thinking, system_prompt)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(working_dir),
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise WorkerError(name, f"Failed to launch {args[0]}: {exc}") from exc

        agent = RpcAgent(name, model, process, self._config)
        logger.info("Spawned %s (%s, thinking=%s) pid=%d", name, model, thinking, process.pid)

        await asyncio.sleep(self._config.spawn_grace_sec)
        if process.returncode is not None:
            stderr = await agent.collect_stderr()
            await agent.terminate()
            raise WorkerError(name, f"failed to start: {stderr}")
        return agent
