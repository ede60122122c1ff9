"""Diagnostics for the remote document backup."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config import Settings, get_settings
from ..persistence import FastPathWriter
from ..telemetry import get_telemetry

PROBE_DOCUMENT = "teste-commit"


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: str
    detail: str


def _status(level: str, name: str, detail: str) -> CheckResult:
    return CheckResult(name=name, status=level, detail=detail)


def check_environment(env: Mapping[str, str], settings: Settings) -> List[CheckResult]:
    results: List[CheckResult] = []

    token = env.get("GITHUB_TOKEN")
    if token:
        results.append(_status("ok", "GITHUB_TOKEN", f"present ({token[:4]}...)"))
    else:
        results.append(_status("error", "GITHUB_TOKEN", "missing; remote backup disabled"))

    if env.get("REPO_URL"):
        results.append(_status("ok", "REPO_URL", env["REPO_URL"]))
    else:
        results.append(
            _status("warning", "REPO_URL", f"not set; using default {settings.git_repository}")
        )

    if env.get("DISCORD_TOKEN"):
        results.append(_status("ok", "DISCORD_TOKEN", "present"))
    else:
        results.append(_status("error", "DISCORD_TOKEN", "missing"))

    data_dir = settings.data_dir
    if (data_dir / ".git").is_dir():
        results.append(_status("ok", "git_repository", f"{data_dir} is a Git repository"))
    else:
        results.append(
            _status("warning", "git_repository", f"{data_dir} will be initialised on first sync")
        )
    return results


async def _check_remote(writer: FastPathWriter) -> CheckResult:
    engine = writer.engine
    try:
        reachable = await engine.check_connectivity()
    finally:
        engine.close()
    if reachable:
        return _status("ok", "remote_connectivity", "fetch succeeded")
    failure = engine.last_failure
    detail = failure.kind.value if failure else "unknown failure"
    return _status("error", "remote_connectivity", detail)


def run_checks(env: Mapping[str, str], settings: Optional[Settings] = None) -> List[CheckResult]:
    settings = settings or get_settings()
    results = check_environment(env, settings)
    if not settings.git_token:
        results.append(_status("error", "remote_connectivity", "skipped; no token"))
        return results
    results.append(asyncio.run(_check_remote(FastPathWriter.from_settings(settings))))
    return results


async def _test_commit(writer: FastPathWriter) -> List[CheckResult]:
    results: List[CheckResult] = []
    probe = {
        "teste": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mensagem": "Teste de commit do bot",
    }
    try:
        local_ok = writer.persist(PROBE_DOCUMENT, probe, "Teste de salvamento assíncrono")
        await writer.drain()
        results.append(
            _status("ok" if local_ok else "error", "fast_path_write", "local write + background sync")
        )
        probe["sincrono"] = True
        pushed = await writer.persist_and_sync(
            PROBE_DOCUMENT, probe, "Teste de salvamento síncrono"
        )
    finally:
        await writer.aclose()
    failure = writer.engine.last_failure
    if pushed:
        results.append(_status("ok", "synchronous_push", "commit pushed"))
    elif failure is None:
        results.append(_status("warning", "synchronous_push", "nothing to commit"))
    else:
        results.append(_status("error", "synchronous_push", failure.kind.value))
    return results


def run_test_commit(settings: Optional[Settings] = None) -> List[CheckResult]:
    """Write a probe document and push it through both persistence paths."""

    settings = settings or get_settings()
    if PROBE_DOCUMENT not in settings.documents:
        settings = replace(settings, documents=settings.documents + (PROBE_DOCUMENT,))
    return asyncio.run(_test_commit(FastPathWriter.from_settings(settings)))


def telemetry_report(cleanup_days: Optional[int] = None) -> Dict[str, Any]:
    """Summarise recorded metrics, optionally pruning old events first."""

    telemetry = get_telemetry()
    if cleanup_days is not None:
        telemetry.cleanup_old_data(days_to_keep=cleanup_days)
    return telemetry.generate_report()


def _print_table(results: Iterable[CheckResult]) -> None:
    header = f"{'Check':<24} {'Status':<8} Detail"
    print(header)
    print("-" * len(header))
    for result in results:
        print(f"{result.name:<24} {result.status:<8} {result.detail}")


def main(argv: Iterable[str] | None = None) -> int:  # pragma: no cover - CLI entry point
    parser = argparse.ArgumentParser(description="Diagnose the remote document backup.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("check", help="Check environment and remote connectivity")
    sub.add_parser("test-commit", help="Write a probe document and push it")
    report = sub.add_parser("telemetry", help="Print the telemetry report as JSON")
    report.add_argument("--cleanup-days", type=int, help="Delete events older than N days first")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if args.command == "telemetry":
        print(json.dumps(telemetry_report(args.cleanup_days), indent=2, ensure_ascii=False))
        return 0
    if args.command == "check":
        results = run_checks(os.environ)
    else:
        results = run_test_commit()
    _print_table(results)
    if any(result.status == "error" for result in results):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
