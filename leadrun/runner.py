from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
from typing import Optional

from leadrun.config import Settings, get_settings
from leadrun.models.run import RunInput, RunOutcome
from leadrun.services.run import RunController

logger = logging.getLogger(__name__)


async def run_once(run_input: RunInput, settings: Settings) -> RunOutcome:
    """Run to completion; an interrupted run checkpoints its state before exiting."""
    controller = RunController.from_settings(run_input, settings)
    try:
        return await controller.run()
    except asyncio.CancelledError:
        await controller.suspend()
        raise


def load_input(args: argparse.Namespace) -> RunInput:
    if args.input_json:
        return RunInput.model_validate_json(args.input_json)
    with open(args.input, "r", encoding="utf-8") as f:
        return RunInput.model_validate_json(f.read())


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a metered lead search")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("input", nargs="?", help="Path to the run input JSON file")
    src.add_argument("--input-json", help="Run input as an inline JSON string")
    parser.add_argument("--storage-dir", help="Override LEADRUN_STORAGE_DIR")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.storage_dir:
        settings = dataclasses.replace(settings, storage_dir=args.storage_dir)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    run_input = load_input(args)
    outcome = asyncio.run(run_once(run_input, settings))
    print(json.dumps(outcome.model_dump(mode="json", by_alias=True), ensure_ascii=False))
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
