"""
Tests for the execution collaborators.
"""

import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from job_engine.scheduler import CommandRunnerError
from job_engine.scheduler.runners import (
    OllamaCommandSimulator,
    SubprocessCommandRunner,
    build_runner,
)


def _mock_client(post: AsyncMock) -> AsyncMock:
    client = AsyncMock()
    client.post = post
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


def _generate_response(payload, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = json.dumps(payload)
    response.json = MagicMock(return_value=payload)
    return response


class TestSubprocessCommandRunner:
    @pytest.mark.asyncio
    async def test_captures_stdout_and_exit_code(self):
        runner = SubprocessCommandRunner()

        result = await runner.run(sys.executable, "-c \"print('hello world')\"")

        assert result.stdout.strip() == "hello world"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_non_zero_exit_and_stderr(self):
        runner = SubprocessCommandRunner()

        result = await runner.run(
            sys.executable, "-c \"import sys; sys.stderr.write('bad'); sys.exit(3)\""
        )

        assert result.exit_code == 3
        assert result.stderr == "bad"

    @pytest.mark.asyncio
    async def test_args_are_not_passed_through_a_shell(self):
        runner = SubprocessCommandRunner()

        result = await runner.run(
            sys.executable, "-c \"import sys; print(sys.argv[1:])\" 'a b' '$HOME'"
        )

        assert result.stdout.strip() == "['a b', '$HOME']"

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self):
        runner = SubprocessCommandRunner()

        with pytest.raises(FileNotFoundError):
            await runner.run("definitely-not-a-real-command-xyz", "")


class TestOllamaCommandSimulator:
    """Tests for OllamaCommandSimulator."""

    def test_prompt_contains_command_line(self):
        prompt = OllamaCommandSimulator().build_prompt("echo", "hello")

        assert "`echo hello`" in prompt
        assert '"exitCode"' in prompt

    @pytest.mark.asyncio
    async def test_successful_simulation(self):
        simulator = OllamaCommandSimulator(base_url="http://ollama:11434/", model="test-model")
        body = {"response": json.dumps({"stdout": "hello\n", "stderr": "", "exitCode": 0})}
        post = AsyncMock(return_value=_generate_response(body))

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value = _mock_client(post)
            result = await simulator.run("echo", "hello")

        assert result.stdout == "hello\n"
        assert result.exit_code == 0

        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        assert url == "http://ollama:11434/api/generate"
        assert payload["model"] == "test-model"
        assert payload["format"] == "json"
        assert payload["stream"] is False

    @pytest.mark.asyncio
    async def test_timeout_raises_runner_error(self):
        post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value = _mock_client(post)
            with pytest.raises(CommandRunnerError, match="timeout"):
                await OllamaCommandSimulator().run("echo", "hi")

    @pytest.mark.asyncio
    async def test_connection_error_raises_runner_error(self):
        post = AsyncMock(side_effect=httpx.RequestError("Connection refused"))

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value = _mock_client(post)
            with pytest.raises(CommandRunnerError, match="request error"):
                await OllamaCommandSimulator().run("echo", "hi")

    @pytest.mark.asyncio
    async def test_http_error_raises_runner_error(self):
        post = AsyncMock(return_value=_generate_response({"error": "model not found"}, 404))

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value = _mock_client(post)
            with pytest.raises(CommandRunnerError, match="HTTP 404"):
                await OllamaCommandSimulator().run("echo", "hi")


class TestParseResponse:
    def test_valid_body(self):
        body = {"response": json.dumps({"stdout": "", "stderr": "not found", "exitCode": 127})}

        result = OllamaCommandSimulator.parse_response(body)

        assert result.stderr == "not found"
        assert result.exit_code == 127

    @pytest.mark.parametrize(
        "response_text",
        [
            "not json",
            json.dumps(["stdout", "stderr"]),
            json.dumps({"stdout": "x", "stderr": ""}),
            json.dumps({"stdout": "x", "stderr": "", "exitCode": "0"}),
            json.dumps({"stdout": "x", "stderr": "", "exitCode": True}),
            json.dumps({"stdout": None, "stderr": "", "exitCode": 0}),
        ],
    )
    def test_invalid_shapes(self, response_text):
        with pytest.raises(CommandRunnerError):
            OllamaCommandSimulator.parse_response({"response": response_text})

    def test_error_body(self):
        with pytest.raises(CommandRunnerError, match="boom"):
            OllamaCommandSimulator.parse_response({"error": "boom"})


class TestBuildRunner:
    def test_known_runners(self):
        assert isinstance(build_runner("subprocess"), SubprocessCommandRunner)
        assert isinstance(build_runner("OLLAMA"), OllamaCommandSimulator)

    def test_unknown_runner(self):
        with pytest.raises(ValueError):
            build_runner("docker")
