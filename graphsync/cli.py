from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .config import LoaderConfig, load_config
from .errors import ConfigError
from .orchestrator import FetchOrchestrator
from .transport import Transport
from .utils.logging import setup_logging
from .writers.jsonl_writer import SnapshotWriter


def build_orchestrator(
    config: Dict[str, Any],
    writer: SnapshotWriter,
    transport: Transport | None = None,
) -> FetchOrchestrator:
    loader_cfg = config["loader"]
    source = loader_cfg["url"]
    logger = logging.getLogger(__name__)

    def on_load_complete(snapshot: Dict[str, Any]) -> None:
        path = writer.write_snapshot(snapshot, source=source)
        logger.info(
            "snapshot-written",
            extra={
                "path": str(path),
                "nodes": len(snapshot["nodes"]),
                "links": len(snapshot["links"]),
            },
        )

    def on_load_error(error: Exception) -> None:
        logger.error("source-error", extra={"source": source, "error": str(error)})

    loader = LoaderConfig.from_dict(
        loader_cfg,
        on_load_complete=on_load_complete,
        on_load_error=on_load_error,
    )
    return FetchOrchestrator(loader, transport=transport)


async def run_loader(
    config: Dict[str, Any],
    once: bool,
    output_dir: str | None = None,
    transport: Transport | None = None,
) -> FetchOrchestrator:
    writer = SnapshotWriter(output_dir or config.get("output_dir", "data/snapshots"))
    orchestrator = build_orchestrator(config, writer, transport=transport)
    async with orchestrator:
        outcome = await orchestrator.start()
        logging.getLogger(__name__).info(
            "initial-load",
            extra={"outcome": outcome.value, "url": config["loader"]["url"]},
        )
        if not once:
            await asyncio.Event().wait()
    return orchestrator


def run_command(args: argparse.Namespace) -> None:
    config = load_config(Path(args.config))
    setup_logging(Path(config.get("logs_dir", "logs")))
    once = args.once
    if not once and not config["loader"].get("poll_interval"):
        logging.getLogger(__name__).info("no-poll-interval", extra={"config": args.config})
        once = True
    try:
        asyncio.run(run_loader(config, once=once, output_dir=args.output))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("interrupted")


def validate_command(args: argparse.Namespace) -> None:
    config = load_config(Path(args.config))
    LoaderConfig.from_dict(config["loader"])
    print(yaml.safe_dump(config, sort_keys=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Graph data loader")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Load the configured source and write snapshots")
    run_parser.add_argument("--config", default="graphsync.yml", help="Path to the YAML config")
    run_parser.add_argument("--once", action="store_true", help="Load once and exit instead of polling")
    run_parser.add_argument("--output", default=None, help="Snapshot output directory")
    run_parser.set_defaults(func=run_command)

    validate_parser = subparsers.add_parser("validate", help="Validate and print configuration")
    validate_parser.add_argument("--config", default="graphsync.yml", help="Path to the YAML config")
    validate_parser.set_defaults(func=validate_command)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


if __name__ == "__main__":
    main()
