from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any, TextIO

import structlog

from sourcerr.domain.entities.sources import CoordinatorState
from sourcerr.infrastructure.composition import build_services
from sourcerr.infrastructure.config import AppConfig, load_config
from sourcerr.infrastructure.logging.setup import configure_logging

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_NO_SOURCE = 1


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sourcerr")

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--api-base-url",
        default=None,
        help="Override the provider backend base URL.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    search = commands.add_parser(
        "search", help="Aggregate play sources for a title."
    )
    search.add_argument("query", help="Exact title to look up.")
    search.add_argument(
        "--provider",
        default=None,
        help="Preferred provider key (fast path).",
    )
    search.add_argument(
        "--id",
        dest="stable_id",
        default=None,
        help="Stable item id within the preferred provider.",
    )
    search.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the result as JSON.",
    )
    search.add_argument(
        "--metrics",
        action="store_true",
        help="Include provider/probe metrics in JSON output.",
    )

    return parser.parse_args(argv)


def state_to_dict(state: CoordinatorState) -> dict[str, Any]:
    """JSON-serializable view of a published coordinator state."""
    active = state.active_result
    return {
        "query": state.query,
        "error": state.error,
        "favorited": state.is_favorited,
        "settled": state.aggregate.all_providers_settled,
        "failed_providers": sorted(state.aggregate.failed_provider_ids),
        "results": [
            {
                "dedupe_key": item.dedupe_key,
                "provider_id": item.provider_id,
                "provider_name": item.provider_display_name,
                "title": item.title,
                "id": item.raw_id,
                "episodes": len(item.episodes),
                "resolution": item.resolution_label,
                "active": active is not None and item.dedupe_key == active.dedupe_key,
            }
            for item in state.results
        ],
    }


def render_text(state: CoordinatorState, out: TextIO) -> None:
    if state.error:
        print(f"error: {state.error}", file=out)
        return
    active = state.active_result
    for n, item in enumerate(state.results, start=1):
        marker = "*" if active is not None and item.dedupe_key == active.dedupe_key else " "
        resolution = item.resolution_label or "?"
        print(
            f"{marker}{n:>2}. {item.provider_display_name} "
            f"[{resolution}] {item.episode_count} ep ({item.provider_id})",
            file=out,
        )
    if state.aggregate.failed_provider_ids:
        failed = ", ".join(sorted(state.aggregate.failed_provider_ids))
        print(f"failed: {failed}", file=out)


async def run_search(
    config: AppConfig,
    query: str,
    *,
    preferred_provider_id: str | None = None,
    stable_id: str | None = None,
) -> tuple[CoordinatorState, dict[str, object]]:
    """Run one session to completion; return the final state and metrics."""
    async with build_services(config) as services:
        coordinator = services.coordinator
        await coordinator.init(query, preferred_provider_id, stable_id)
        state = await coordinator.wait_settled()
        return state, services.metrics.snapshot()


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Load config exactly once here, then wire the services with it.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.api_base_url:
        cli_overrides["api_base_url"] = args.api_base_url
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )
    configure_logging(config)

    state, metrics = asyncio.run(
        run_search(
            config,
            args.query,
            preferred_provider_id=args.provider,
            stable_id=args.stable_id,
        )
    )

    if args.as_json:
        payload = state_to_dict(state)
        if args.metrics:
            payload["metrics"] = metrics
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        render_text(state, sys.stdout)

    return EXIT_NO_SOURCE if state.error or not state.results else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(start())
