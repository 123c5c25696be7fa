"""
Command-line interface for the job engine.

Commands:
    serve   Run the HTTP API (engine starts inside the app lifespan)
    submit  Submit a job to the running server
    runs    List runs, newest first
    log     Show the output of one run

Everything except serve talks to the server over HTTP (see --url /
JOB_ENGINE_API_URL). The server owns the store; the CLI never opens it.
"""

import argparse
import json
import os
import sys
import time
from datetime import datetime
from typing import Optional

import httpx

from . import __version__, config
from .infra.logging_config import setup_logging
from .scheduler.entities import TERMINAL_STATUSES, to_iso


WAIT_POLL_SECONDS = 0.2

_TERMINAL_VALUES = {status.value for status in TERMINAL_STATUSES}


def _parse_time(value: str) -> datetime:
    """Parse an ISO-8601 time; values without an offset are local time."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid ISO-8601 time: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="job-engine", description="Job execution engine")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--url",
        default=os.getenv("JOB_ENGINE_API_URL", config.API_URL),
        help="Base URL of the running server",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_serve = subparsers.add_parser("serve", help="Run the HTTP API server")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    p_submit = subparsers.add_parser("submit", help="Submit a job")
    p_submit.add_argument("name", help="Job name")
    p_submit.add_argument("job_command", metavar="command", help="Command to execute")
    p_submit.add_argument("args", nargs="?", default="", help="Argument string")
    p_submit.add_argument(
        "--at",
        dest="scheduled_time",
        type=_parse_time,
        help="Schedule for this ISO-8601 time instead of running immediately "
        "(local time unless an offset or Z is given)",
    )
    p_submit.add_argument(
        "--wait",
        action="store_true",
        help="Wait until the run finishes; exit 0 only if it succeeded",
    )

    p_runs = subparsers.add_parser("runs", help="List runs, newest first")
    p_runs.add_argument("--limit", type=int, default=20)
    p_runs.add_argument("--json", action="store_true", help="Print JSON")

    p_log = subparsers.add_parser("log", help="Show the output of a run")
    p_log.add_argument("run_id")

    return parser


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list):
        # Request validation errors
        return "; ".join(str(err.get("msg", err)) for err in detail)
    return f"HTTP {response.status_code}: {response.text[:200]}"


def _print_run_row(run: dict) -> None:
    duration = run.get("duration_seconds")
    duration_text = f"{duration:.2f}s" if duration is not None else "..."
    print(
        f"[{run['run_id']}] {run['status']:<9} job='{run.get('job_name') or '?'}' "
        f"start={run['start_time']} duration={duration_text} exit={run.get('exit_code')}"
    )


# =============================================================================
# Client Commands
# =============================================================================


def _wait_for_run(client: httpx.Client, run_id: str) -> Optional[dict]:
    while True:
        response = client.get(f"/jobs/runs/{run_id}")
        if response.status_code != 200:
            print(f"Error: {_error_detail(response)}", file=sys.stderr)
            return None
        run = response.json()
        if run["status"] in _TERMINAL_VALUES:
            return run
        time.sleep(WAIT_POLL_SECONDS)


def _submit(args: argparse.Namespace, client: httpx.Client) -> int:
    payload = {
        "job_name": args.name,
        "command": args.job_command,
        "args": args.args,
        "execution_type": "SCHEDULED" if args.scheduled_time else "IMMEDIATE",
    }
    if args.scheduled_time:
        payload["scheduled_time"] = to_iso(args.scheduled_time)

    response = client.post("/jobs", json=payload)
    if response.status_code != 201:
        print(f"Error: {_error_detail(response)}", file=sys.stderr)
        return 1

    data = response.json()
    job, run = data["job"], data["run"]
    print(f"Submitted job {job['job_id']} as run {run['run_id']} [{run['status']}]")

    if not args.wait:
        return 0

    final = _wait_for_run(client, run["run_id"])
    if final is None:
        return 1
    _print_run_row(final)
    return 0 if final["status"] == "SUCCESS" else 1


def _runs(args: argparse.Namespace, client: httpx.Client) -> int:
    response = client.get("/jobs/runs", params={"limit": args.limit})
    if response.status_code != 200:
        print(f"Error: {_error_detail(response)}", file=sys.stderr)
        return 1

    runs = response.json()["runs"]
    if args.json:
        print(json.dumps(runs, indent=2, ensure_ascii=False))
    else:
        for run in runs:
            _print_run_row(run)
    return 0


def _log(args: argparse.Namespace, client: httpx.Client) -> int:
    response = client.get(f"/jobs/runs/{args.run_id}/log")
    if response.status_code != 200:
        print(f"Error: {_error_detail(response)}", file=sys.stderr)
        return 1

    log = response.json()
    if log.get("command_line"):
        print(f"$ {log['command_line']}")
    print(f"status: {log['run']['status']}  exit_code: {log.get('exit_code')}")
    print("--- stdout ---")
    print(log.get("stdout") or "")
    print("--- stderr ---")
    print(log.get("stderr") or "")
    return 0


_CLIENT_COMMANDS = {
    "submit": _submit,
    "runs": _runs,
    "log": _log,
}


def main(argv: Optional[list[str]] = None, client: Optional[httpx.Client] = None) -> int:
    """
    Run the CLI.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        client: HTTP client for the server; one is opened on --url if omitted
    """
    args = _build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        setup_logging(config.LOG_LEVEL, log_dir=config.LOG_DIR)
        uvicorn.run("job_engine.api.main:app", host=args.host, port=args.port)
        return 0

    command = _CLIENT_COMMANDS[args.command]
    try:
        if client is not None:
            return command(args, client)
        with httpx.Client(base_url=args.url, timeout=config.API_TIMEOUT_SECONDS) as owned:
            return command(args, owned)
    except httpx.TimeoutException:
        print(f"Error: job engine at {args.url} did not respond in time", file=sys.stderr)
        return 1
    except httpx.RequestError as e:
        print(f"Error: cannot reach job engine at {args.url}: {e}", file=sys.stderr)
        return 1
