"""InsiderWire - SEC Form 4 insider trade signals (backend).

Pipeline-first:
- Recent Form 4 filings are fetched, parsed and scored one at a time.
- Open-market purchases (P) and sales (S) are the only transactions kept.
- Large or high-scoring trades are alerted immediately; everything else is
  summarized in a once-daily digest.

Reprocessing is always safe: transactions upsert on their natural key and an
urgent alert is sent at most once per transaction.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
