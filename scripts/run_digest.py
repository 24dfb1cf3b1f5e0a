"""Send the daily digest.

Usage:
  python scripts/run_digest.py               # yesterday (UTC)
  python scripts/run_digest.py --date 2024-01-15
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
from insiderwire.pipeline.digest import DailyDigestAggregator
from insiderwire.util.time import parse_iso_date


def main() -> None:
    p = argparse.ArgumentParser(description="Summarize one day's insider transactions into a Slack digest.")
    p.add_argument("--date", type=str, default=None, help="Transaction date YYYY-MM-DD (default: yesterday UTC)")
    args = p.parse_args()

    day = None
    if args.date:
        day = parse_iso_date(args.date)
        if day is None:
            raise SystemExit(f"Invalid --date: {args.date}")

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        aggregator = DailyDigestAggregator(conn, cfg, SlackClient.from_config(cfg))
        stats = aggregator.generate_digest(day) if day else aggregator.generate_yesterday_digest()

    print(json.dumps(stats.to_dict(), indent=2))
    if stats.error:
        sys.exit(1)


if __name__ == "__main__":
    main()
