"""
Execution collaborators.

A runner turns (command, args) into a CommandResult asynchronously, or
raises. The engine treats runners as opaque: latency and failures are outside
its control, and a call may be abandoned by the Executor after a timeout.

Available runners:
- SubprocessCommandRunner: runs the command as a local child process
- OllamaCommandSimulator: asks a local Ollama model to simulate the
  terminal output of the command (no process is started)
"""

import asyncio
import json
import logging
import shlex
from typing import Optional, Protocol

import httpx

from .. import config
from .entities import CommandResult
from .errors import CommandRunnerError


logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    """Protocol for execution collaborators."""

    async def run(self, command: str, args: str) -> CommandResult:
        """
        Execute (or simulate) a command.

        Args:
            command: Executable name or path
            args: Argument string, split shell-style by runners that need argv

        Returns:
            CommandResult with stdout, stderr and exit code
        """
        ...


class SubprocessCommandRunner:
    """
    Runs commands as local child processes.

    No shell is involved: args are split with shlex and passed as argv.
    A missing executable raises (the run is recorded as FAILED).
    """

    def __init__(self, cwd: Optional[str] = None, encoding: str = "utf-8"):
        self.cwd = cwd
        self.encoding = encoding

    async def run(self, command: str, args: str) -> CommandResult:
        argv = [command, *shlex.split(args or "")]
        logger.debug(f"Starting subprocess: {argv}")

        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=self.cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise

        return CommandResult(
            stdout=stdout.decode(self.encoding, errors="replace"),
            stderr=stderr.decode(self.encoding, errors="replace"),
            exit_code=process.returncode,
        )


SIMULATION_PROMPT = """Simulate the terminal output for the following command:
`{command_line}`

Provide the output as a JSON object with three keys: "stdout", "stderr", and "exitCode".
- If the command is successful, "stdout" should contain the typical output, "stderr" should be an empty string, and "exitCode" should be 0.
- If the command would fail or produce an error, "stdout" should be empty, "stderr" should contain a realistic error message, and "exitCode" should be a non-zero integer (e.g., 1).
- For simple commands like 'echo', return the echoed text in stdout and exitCode 0.
- For commands like 'ls' or 'dir', provide a sample file listing and exitCode 0.
- For commands that don't exist, provide a "command not found" error in stderr and a corresponding exitCode (e.g., 127).
"""


class OllamaCommandSimulator:
    """
    Simulates command output with a local Ollama model.

    Uses POST /api/generate with format="json" and validates the shape of the
    returned object.
    """

    def __init__(
        self,
        base_url: str = config.OLLAMA_BASE_URL,
        model: str = config.OLLAMA_MODEL,
        request_timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.request_timeout = request_timeout

    def build_prompt(self, command: str, args: str) -> str:
        return SIMULATION_PROMPT.format(command_line=f"{command} {args}".strip())

    async def run(self, command: str, args: str) -> CommandResult:
        payload = {
            "model": self.model,
            "prompt": self.build_prompt(command, args),
            "stream": False,
            "format": "json",
        }

        logger.info(f"[OllamaSimulator] Simulating '{command}' with {self.model}")

        try:
            async with httpx.AsyncClient(timeout=self.request_timeout) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.TimeoutException as e:
            raise CommandRunnerError(f"Ollama timeout: {e}") from e
        except httpx.RequestError as e:
            raise CommandRunnerError(f"Ollama request error: {e}") from e

        if response.status_code >= 400:
            raise CommandRunnerError(
                f"Ollama HTTP {response.status_code}: {response.text[:200]}"
            )

        return self.parse_response(response.json())

    @staticmethod
    def parse_response(body: dict) -> CommandResult:
        """Extract a CommandResult from an /api/generate response body."""
        if "error" in body:
            raise CommandRunnerError(f"Ollama error: {body['error']}")

        try:
            result = json.loads(body.get("response", ""))
        except json.JSONDecodeError as e:
            raise CommandRunnerError(f"Invalid JSON from model: {e}") from e

        stdout = result.get("stdout") if isinstance(result, dict) else None
        stderr = result.get("stderr") if isinstance(result, dict) else None
        exit_code = result.get("exitCode") if isinstance(result, dict) else None

        if (
            not isinstance(stdout, str)
            or not isinstance(stderr, str)
            or not isinstance(exit_code, int)
            or isinstance(exit_code, bool)
        ):
            raise CommandRunnerError("Invalid JSON structure from model")

        return CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code)


def build_runner(name: str = config.JOB_ENGINE_RUNNER) -> CommandRunner:
    """
    Build the execution collaborator selected by configuration.

    Args:
        name: "subprocess" or "ollama"

    Raises:
        ValueError: If name is unknown
    """
    name = (name or "").lower()
    if name == "subprocess":
        return SubprocessCommandRunner()
    if name == "ollama":
        return OllamaCommandSimulator()
    raise ValueError(f"Unknown runner: {name}")
