"""Run one Form 4 pipeline pass (fetch recent filings, score, persist, alert).

Usage:
  python scripts/run_processor.py [--count 100]

Intended to be triggered by an external scheduler; at most one run at a time.
Exit status is 1 when any filing failed.
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from insiderwire.config import load_config
from insiderwire.db import connect, init_db
from insiderwire.notify.slack import SlackClient
from insiderwire.pipeline.processor import Form4Processor
from insiderwire.sec.edgar import EdgarClient


def main() -> None:
    p = argparse.ArgumentParser(description="Process the most recent Form 4 filings.")
    p.add_argument("--count", type=int, default=None, help="Filings to fetch (default PROCESSOR_FILING_COUNT)")
    args = p.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        processor = Form4Processor(conn, cfg, EdgarClient.from_config(cfg), SlackClient.from_config(cfg))
        stats = processor.process(args.count)

    print(json.dumps(stats.to_dict(), indent=2))
    if stats.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
