"""CLI entrypoint for goalrunner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from goalrunner.schemas import Message, ModelSettings, SessionContext, StopReason


def _load_dotenv() -> None:
    """Load .env from cwd, its parent, or the source checkout root."""
    _package_root = Path(__file__).resolve().parent.parent.parent  # src/goalrunner/ -> root
    for dir_ in (Path.cwd(), Path.cwd().parent, _package_root):
        env_file = dir_ / ".env"
        if env_file.is_file():
            load_dotenv(env_file)
            return
    load_dotenv()


_load_dotenv()

_EXIT_CODES: dict[StopReason, int] = {
    StopReason.COMPLETED: 0,
    StopReason.MAX_LOOPS: 0,
    StopReason.USER_ABORT: 130,
    StopReason.DECOMPOSITION_FAILED: 1,
    StopReason.RATE_LIMITED: 1,
    StopReason.EXECUTION_FAILED: 1,
}


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the command-line parser for all supported modes."""
    from goalrunner.server import DEFAULT_HOST, DEFAULT_PORT

    p = argparse.ArgumentParser(
        prog="goalrunner",
        description="goalrunner - break a goal into tasks and work through them one by one.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command")

    # Run sub-command
    run_p = sub.add_parser("run", help="Run an agent for a single goal.")
    run_p.add_argument("--goal", type=str, default="", help="The goal to work towards.")
    run_p.add_argument("--name", type=str, default="GoalRunner", help="Agent name label.")
    run_p.add_argument(
        "--api-key",
        type=str,
        default="",
        help="Your own OpenAI key. Runs locally; otherwise the remote service is used.",
    )
    run_p.add_argument("--model", type=str, default="", help="Model name override.")
    run_p.add_argument(
        "--temperature", type=float, default=None, help="Sampling temperature override."
    )
    run_p.add_argument(
        "--max-loops",
        type=int,
        default=None,
        help="Loop cap override (only honoured together with --api-key).",
    )
    run_p.add_argument(
        "--base-url", type=str, default="", help="Remote service URL (env GOALRUNNER_API_URL)."
    )
    run_p.add_argument(
        "--static-tasks",
        action="store_true",
        help="Seed the run with the fixed outline instead of asking a model.",
    )
    run_p.add_argument(
        "--paid", action="store_true", help="Treat the caller as a subscribed user."
    )
    run_p.add_argument("--json", action="store_true", help="Print messages as JSON lines.")

    # Serve sub-command
    serve_p = sub.add_parser("serve", help="Serve the remote planning/execution endpoints.")
    serve_p.add_argument("--host", type=str, default=DEFAULT_HOST)
    serve_p.add_argument("--port", type=int, default=DEFAULT_PORT)

    # Doctor sub-command
    doctor_p = sub.add_parser("doctor", help="Check configuration before running.")
    doctor_p.add_argument("--api-key", type=str, default="")
    doctor_p.add_argument("--base-url", type=str, default="")
    doctor_p.add_argument(
        "--check-key",
        action="store_true",
        help="Send a tiny request to verify the key works.",
    )
    doctor_p.add_argument("--json", action="store_true", help="Print the report as JSON.")
    return p


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the appropriate mode."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    if args.command == "run":
        return _run_goal(args)
    if args.command == "serve":
        return _serve(args)
    if args.command == "doctor":
        return _run_doctor(args)

    parser.print_help()
    print(
        "\nTip: run 'goalrunner run --goal \"...\"' to start an agent,\n"
        "     'goalrunner serve' to host the execution endpoints,\n"
        "     or 'goalrunner doctor' to validate setup.",
        file=sys.stderr,
    )
    return 1


# -- Run command ---------------------------------------------------------------


def _settings_from_args(args: argparse.Namespace) -> ModelSettings:
    values: dict[str, object] = {
        "custom_api_key": args.api_key or None,
        "custom_model_name": args.model or None,
        "custom_max_loops": args.max_loops,
    }
    if getattr(args, "temperature", None) is not None:
        values["custom_temperature"] = args.temperature
    return ModelSettings(**values)


def _print_message(message: Message, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(message.to_dict(), ensure_ascii=False), flush=True)
        return
    label = message.type.value.upper()
    if message.info:
        print(f"[{label}] {message.info}", flush=True)
        if message.value:
            print(f"    {message.value}", flush=True)
    elif message.value:
        print(f"[{label}] {message.value}", flush=True)
    else:
        print(f"[{label}] ...", flush=True)


def _run_goal(args: argparse.Namespace) -> int:
    """Run one agent and stream its messages to stdout."""
    from goalrunner.controller import AutonomousAgent
    from goalrunner.planners import StaticPlanner

    goal = (args.goal or "").strip()
    if not goal:
        print("Error: --goal must be a non-empty string", file=sys.stderr)
        return 1

    settings = _settings_from_args(args)
    session = SessionContext(subscription_id="cli") if args.paid else None
    agent = AutonomousAgent(
        args.name,
        goal,
        lambda message: _print_message(message, as_json=args.json),
        lambda: logging.getLogger(__name__).debug("Agent shut down"),
        settings,
        session,
        planner=StaticPlanner() if args.static_tasks else None,
        base_url=args.base_url,
    )
    try:
        state = asyncio.run(agent.run())
    except KeyboardInterrupt:
        agent.stop_agent()
        state = agent.state
    reason = state.stop_reason or StopReason.USER_ABORT
    return _EXIT_CODES[reason]


# -- Serve command -------------------------------------------------------------


def _serve(args: argparse.Namespace) -> int:
    from goalrunner.server import serve

    serve(host=args.host, port=args.port)
    return 0


# -- Doctor command ------------------------------------------------------------


def _run_doctor(args: argparse.Namespace) -> int:
    """Print a setup report; optionally verify the key with a live request."""
    from goalrunner.errors import ApiRequestError
    from goalrunner.llm import test_connection
    from goalrunner.preflight import build_preflight_report
    from goalrunner.transport import DEFAULT_API_URL

    settings = ModelSettings(custom_api_key=args.api_key or None)
    report = build_preflight_report(settings, base_url=args.base_url.strip() or DEFAULT_API_URL)
    connection_error = ""
    if args.check_key and report.ready:
        try:
            test_connection(settings)
        except (ApiRequestError, RuntimeError) as exc:
            connection_error = str(exc)

    if args.json:
        payload = report.to_dict()
        payload["connection_error"] = connection_error
        print(json.dumps(payload, indent=2))
    else:
        print(f"\n  goalrunner - Setup Diagnostics ({report.mode} mode)")
        print("  " + "=" * 50)
        for check in report.checks:
            print(f"  [{check.status.upper():4}] {check.label}: {check.detail}")
            if check.hint:
                print(f"         -> {check.hint}")
        for message in report.failure_messages():
            print(f"  - Fix: {message}")
        if args.check_key:
            status = f"FAILED ({connection_error})" if connection_error else "ok"
            if not report.ready:
                status = "skipped"
            print(f"  Connection test: {status}")
        print()
    return 0 if report.ready and not connection_error else 1


if __name__ == "__main__":
    raise SystemExit(main())
