"""CLI utility to trigger one ingestion pass and print the summary counts."""
from __future__ import annotations

import argparse
import asyncio
import json

from comment_radar.config import get_settings
from comment_radar.integrations.scrapecreators import ScrapeCreatorsClient
from comment_radar.logging import configure_logging
from comment_radar.services.ingestion import IngestionService


async def main(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    async with ScrapeCreatorsClient(settings) as client:
        ingestion = IngestionService(client, settings)
        outcome = await ingestion.ingest(
            args.query,
            args.type,
            latest_only=args.latest_only,
            target_count=args.target,
        )
    summary = outcome.result.model_dump(by_alias=True, exclude={"comments", "videos"}) if outcome.result else None
    print(json.dumps({"status": outcome.status.value, "error": outcome.error, "data": summary, "debug": outcome.debug}, indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("query")
    parser.add_argument("--type", choices=["username", "video", "keyword"], default="username")
    parser.add_argument("--latest-only", action="store_true")
    parser.add_argument("--target", type=int, default=None)
    asyncio.run(main(parser.parse_args()))
