#!/usr/bin/env python3
"""
Career Pipeline Runner

Runs every generation stage for one user profile and caches the results.

Usage:
    python scripts/run_career_pipeline.py --profile intake.json --owner user-123
    python scripts/run_career_pipeline.py --owner user-123 --clear
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402

from src.coordinator import GenerationCoordinator  # noqa: E402
from src.models.config import SystemParams, load_api_key  # noqa: E402
from src.models.profile import UserProfile  # noqa: E402
from src.utils.cache_store import CacheStore  # noqa: E402
from src.utils.content_client import ContentServiceClient  # noqa: E402
from src.utils.logger import configure_logging  # noqa: E402
from src.utils.progress_tracker import ProgressTracker  # noqa: E402
from src.utils.storage_backend import FileStorage  # noqa: E402

console = Console()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate career guidance content")
    parser.add_argument("--owner", required=True, help="Owner id for cached data")
    parser.add_argument("--profile", type=Path, help="Intake answers JSON file")
    parser.add_argument("--analysis", default="", help="Primary analysis text")
    parser.add_argument(
        "--config", type=Path, default=None, help="system_params.json (defaults used if absent)"
    )
    parser.add_argument(
        "--storage-dir", type=Path, default=Path("data/storage"), help="Cache directory"
    )
    parser.add_argument("--clear", action="store_true", help="Clear all cached data and exit")
    return parser.parse_args(argv)


def load_params(config_path: Path | None) -> SystemParams:
    if config_path is None:
        return SystemParams()
    return SystemParams.load(config_path)


def print_summary(coordinator: GenerationCoordinator) -> None:
    table = Table(title="Generation stages")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Items")
    table.add_column("Note")

    snapshot = coordinator.snapshot()
    for stage_id, status in coordinator.statuses().items():
        artifact = snapshot.get(stage_id)
        items = ""
        note = ""
        if artifact is not None:
            payload = artifact.payload
            items = str(len(payload)) if isinstance(payload, (list, dict)) else "0"
            note = "fallback (unparseable response)" if artifact.degraded else ""
        error = coordinator.last_error(stage_id)
        if error is not None:
            note = str(error)[:80]
        table.add_row(stage_id.value, status.value, items, note)

    console.print(table)


async def run(args: argparse.Namespace) -> int:
    params = load_params(args.config)
    configure_logging(log_level=params.log_level)

    cache_store = CacheStore(FileStorage(args.storage_dir), cache_config=params.cache)

    async with ContentServiceClient.from_params(params, api_key=load_api_key()) as client:
        coordinator = GenerationCoordinator(
            owner_id=args.owner,
            client=client,
            cache_store=cache_store,
            params=params,
        )

        if args.clear:
            coordinator.clear_all_data()
            console.print("[yellow]All cached data cleared[/yellow]")
            return 0

        if args.profile is not None:
            with open(args.profile, "r", encoding="utf-8") as f:
                form = json.load(f)
            coordinator.start_session(
                UserProfile.from_intake(form), analysis=args.analysis, form_data=form
            )
        elif coordinator.restore_session():
            console.print("[green]Restored cached session[/green]")
            print_summary(coordinator)
            return 0
        elif coordinator.profile is None:
            console.print("[red]No cached profile found; pass --profile[/red]")
            return 1

        await coordinator.generate_all(progress=ProgressTracker(console=console))
        coordinator.flush_autosave()
        print_summary(coordinator)

    return 0


def main() -> None:
    sys.exit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
