#!/usr/bin/env python
"""
Run one live OpenSky ingestion cycle and one tempo calculation against the
configured database, then print what happened.

Usage (from repo root):
    python scripts/run_ingestion_once.py
"""

import asyncio
import json

from forceflow.db import init_db
from forceflow.services import IngestionService, TempoScorer


async def main() -> None:
    init_db()
    service = IngestionService()

    print(f"=== OpenSky ingestion for bounds {service.bounds.as_params()} ===\n")
    report = await service.run_cycle()
    print(json.dumps(report.to_summary().model_dump(mode="json"), indent=2))

    for result in report.summary.results[:10]:
        print(f"  {result.outcome.value:<9} {result.icao24 or '?':<8} {result.reason or ''}")

    print("\nStatus:")
    print(json.dumps(service.status().model_dump(mode="json"), indent=2))

    tempo = TempoScorer().compute_and_store()
    print(f"\nTempo score for {tempo.bucket.isoformat()}: {tempo.score} {tempo.counts}")
    service.close()


if __name__ == "__main__":
    asyncio.run(main())
