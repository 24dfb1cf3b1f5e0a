from datetime import date, timedelta
from unittest import mock

from insiderwire.db import get_app_config
from insiderwire.notify.formatters import format_daily_digest
from insiderwire.pipeline.digest import DailyDigestAggregator, summarize_transactions

DAY = date(2024, 1, 15)


def _alert_count(conn):
    return conn.execute("SELECT COUNT(*) AS n FROM alerts WHERE alert_type='digest'").fetchone()["n"]


def _row(issuer_id, score, code="P", value=1000.0, ticker="AAPL", name="x"):
    return {
        "issuer_id": issuer_id,
        "ticker": ticker,
        "company_name": f"Company {issuer_id}",
        "insider_name": name,
        "transaction_code": code,
        "transaction_value": value,
        "signal_score": score,
    }


class TestSummarize:
    def test_groups_counts_and_totals(self):
        rows = [
            _row(1, 1.0, "P", 1000.0, name="a"),
            _row(1, -2.0, "S", 2500.0, name="b"),
            _row(2, 0.5, "P", 10.0, ticker=None, name="c"),
        ]
        summary = summarize_transactions(DAY, rows)
        assert summary.total_transactions == 3
        first, second = summary.tickers
        assert (first.label, first.buy_count, first.sell_count, first.total_value) == ("AAPL", 1, 1, 3500.0)
        assert first.max_abs_score == 2.0
        assert second.label == "Company 2"

    def test_issuers_ranked_by_max_abs_score(self):
        rows = [_row(1, 2.0, ticker="LOW"), _row(2, -6.0, "S", ticker="HIGH"), _row(3, 4.0, ticker="MID")]
        labels = [t.label for t in summarize_transactions(DAY, rows).tickers]
        assert labels == ["HIGH", "MID", "LOW"]

    def test_detail_capped_with_omitted_count(self):
        rows = [_row(1, s, name=f"n{s}") for s in (1.0, -5.0, 3.0, 0.5, 2.0)]
        (t,) = summarize_transactions(DAY, rows, detail_limit=3).tickers
        assert [tx["signal_score"] for tx in t.top_transactions] == [-5.0, 3.0, 2.0]
        assert t.omitted_count == 2
        assert t.transaction_count == 5


class TestGenerateDigest:
    def test_empty_day_sends_nothing(self, conn, cfg, notifier):
        stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)
        assert stats.transactions_processed == 0
        assert stats.message_sent is False
        assert notifier.messages == []
        assert get_app_config(conn, "digest_last_date") is None

    def test_five_transactions_three_in_detail(self, conn, cfg, notifier, seed_transaction):
        for i in range(5):
            seed_transaction(insider=f"Insider {i}", day=DAY, shares=100.0 * (i + 1))
        seed_transaction(insider="Elsewhere", day=DAY + timedelta(days=1))

        stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)

        assert stats.transactions_processed == 5
        assert stats.tickers_included == 1
        assert stats.message_sent is True
        assert stats.alerts_recorded == 5
        assert stats.alert_errors == []
        assert _alert_count(conn) == 5
        assert get_app_config(conn, "digest_last_date") == "2024-01-15"

        (message,) = notifier.messages
        texts = [b["elements"][0]["text"] for b in message["blocks"] if b["type"] == "context"]
        detail_lines = texts[0].split("\n")
        assert len(detail_lines) == 3
        assert "_...and 2 more transactions_" in texts
        assert message["text"] == "Daily Insider Trading Digest for 2024-01-15 - 5 transactions across 1 tickers"

    def test_send_failure_records_nothing(self, conn, cfg, make_notifier, seed_transaction):
        seed_transaction(day=DAY)
        failing = make_notifier(ok=False, error="invalid_token")
        stats = DailyDigestAggregator(conn, cfg, failing).generate_digest(DAY)
        assert stats.message_sent is False
        assert stats.error == "invalid_token"
        assert stats.alerts_recorded == 0
        assert _alert_count(conn) == 0

    def test_alert_record_failures_are_collected(self, conn, cfg, notifier, seed_transaction):
        for i in range(3):
            seed_transaction(insider=f"Insider {i}", day=DAY)

        from insiderwire.store import mutations

        real = mutations.record_alert
        calls = {"n": 0}

        def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            return real(*args, **kwargs)

        with mock.patch("insiderwire.pipeline.digest.record_alert", side_effect=flaky):
            stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)

        assert stats.message_sent is True
        assert stats.alerts_recorded == 2
        assert len(stats.alert_errors) == 1
        assert stats.alert_errors[0]["error"] == "disk full"
        assert _alert_count(conn) == 2

    def test_yesterday_digest(self, conn, cfg, notifier):
        aggregator = DailyDigestAggregator(conn, cfg, notifier)
        with mock.patch("insiderwire.pipeline.digest.utc_today", return_value=date(2024, 3, 1)):
            stats = aggregator.generate_yesterday_digest()
        assert stats.day == "2024-02-29"


def test_digest_message_layout():
    rows = [_row(1, 5.5, name="Cook Timothy", value=600_000.0), _row(1, -1.0, "S", name="Maestri Luca", value=20_000.0)]
    message = format_daily_digest(summarize_transactions(DAY, rows))
    blocks = message["blocks"]
    assert blocks[0]["text"]["text"] == "📊 Daily Insider Trading Digest - 2024-01-15"
    assert blocks[1]["text"]["text"] == "*2* transactions across *1* tickers"
    assert blocks[3]["text"]["text"] == "*AAPL*\n1 buys, 1 sells | Total: $620,000"
    assert blocks[4]["elements"][0]["text"] == (
        "🚀 Cook Timothy bought $600,000 worth (score: +5.50)\n⚠️ Maestri Luca sold $20,000 worth (score: -1.00)"
    )
    assert not any("more transactions" in str(b) for b in blocks)


class ExplodingNotifier:
    def __init__(self):
        self.calls = 0

    def post_message(self, message):
        self.calls += 1
        raise RuntimeError("transport exploded")


class TestDigestErrors:
    def test_notifier_exception_lands_in_stats(self, conn, cfg, seed_transaction):
        seed_transaction(day=DAY)
        notifier = ExplodingNotifier()

        stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)

        assert notifier.calls == 1
        assert stats.error == "transport exploded"
        assert stats.message_sent is False
        assert stats.transactions_processed == 1
        assert _alert_count(conn) == 0
        assert get_app_config(conn, "digest_last_date") is None

    def test_bookkeeping_failure_after_send_lands_in_stats(self, conn, cfg, notifier, seed_transaction):
        seed_transaction(day=DAY)
        conn.execute("DROP TABLE app_config")
        conn.commit()

        stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)

        assert stats.message_sent is True
        assert stats.alerts_recorded == 1
        assert "app_config" in stats.error
        assert len(notifier.messages) == 1
        assert _alert_count(conn) == 1

    def test_query_failure_lands_in_stats(self, conn, cfg, notifier):
        with mock.patch(
            "insiderwire.pipeline.digest.get_daily_transactions_by_date",
            side_effect=RuntimeError("no such table: transactions"),
        ):
            stats = DailyDigestAggregator(conn, cfg, notifier).generate_digest(DAY)
        assert stats.error == "no such table: transactions"
        assert notifier.messages == []
