"""Slack Block Kit payloads for urgent alerts and the daily digest."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from insiderwire.compute.rules import format_signal_score, get_score_emoji
from insiderwire.models import DigestSummary
from insiderwire.sec.parser import TRANSACTION_CODE_BUY
from insiderwire.util.normalization import padded_cik

SEC_VIEWER_URL = "https://www.sec.gov/cgi-bin/viewer"


def _money(v: Any) -> str:
    return f"${float(v or 0):,.0f}"


def _shares(v: Any) -> str:
    f = float(v or 0)
    return f"{f:,.0f}" if f.is_integer() else f"{f:,.2f}"


def _mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [_mrkdwn(text)]}


def filing_viewer_url(accession_number: str, cik: str) -> str:
    return f"{SEC_VIEWER_URL}?action=view&cik={padded_cik(cik)}&accession_number={accession_number}&xbrl_type=v"


def format_urgent_alert(tx: Mapping[str, Any], holdings_delta_percent: Optional[float] = None) -> Dict[str, Any]:
    """Build the urgent alert message for one persisted transaction.

    `tx` is a transaction row joined with its issuer and insider
    (ticker, company_name, issuer_cik, insider_name, insider_title).
    """
    score = float(tx.get("signal_score") or 0.0)
    emoji = get_score_emoji(score)
    formatted_score = format_signal_score(score)
    is_buy = tx.get("transaction_code") == TRANSACTION_CODE_BUY
    verb = "BOUGHT" if is_buy else "SOLD"
    ticker_display = tx.get("ticker") or tx.get("company_name") or ""

    name = tx.get("insider_name") or ""
    title = tx.get("insider_title")
    shares = _shares(tx.get("shares"))
    price = f"${float(tx.get('price') or 0):.2f}"

    fallback = f"{emoji} {ticker_display}: {name} {verb} {shares} shares (Signal Score: {formatted_score})"

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{emoji} {ticker_display} - Insider {'Buy' if is_buy else 'Sell'}",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Insider:*\n{name}{f' ({title})' if title else ''}"),
                _mrkdwn(f"*Signal Score:*\n{formatted_score}"),
                _mrkdwn(f"*Shares:*\n{shares} @ {price}"),
                _mrkdwn(f"*Total Value:*\n{_money(tx.get('transaction_value'))}"),
                _mrkdwn(f"*Transaction Date:*\n{tx.get('transaction_date')}"),
                _mrkdwn(f"*Ownership:*\n{'Direct' if tx.get('is_direct_ownership') else 'Indirect'}"),
            ],
        },
    ]

    if holdings_delta_percent:
        sign = "+" if holdings_delta_percent > 0 else ""
        arrow = "📈" if holdings_delta_percent > 0 else "📉"
        blocks.append(
            _context(
                f"{arrow} Holdings changed by *{sign}{holdings_delta_percent:.1f}%* "
                f"to {_shares(tx.get('post_transaction_shares'))} shares"
            )
        )

    if tx.get("is_10b5_1"):
        blocks.append(_context("ℹ️ This transaction was made pursuant to a Rule 10b5-1 trading plan"))

    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View SEC Filing", "emoji": True},
                    "url": filing_viewer_url(str(tx.get("filing_accession") or ""), str(tx.get("issuer_cik") or "")),
                    "action_id": "view_filing",
                }
            ],
        }
    )

    return {"text": fallback, "blocks": blocks}


def format_digest_line(tx: Mapping[str, Any]) -> str:
    score = float(tx.get("signal_score") or 0.0)
    action = "bought" if tx.get("transaction_code") == TRANSACTION_CODE_BUY else "sold"
    return (
        f"{get_score_emoji(score)} {tx.get('insider_name') or ''} {action} "
        f"{_money(tx.get('transaction_value'))} worth (score: {format_signal_score(score)})"
    )


def format_daily_digest(summary: DigestSummary) -> Dict[str, Any]:
    day = summary.day.isoformat()
    n_tickers = len(summary.tickers)

    fallback = (
        f"Daily Insider Trading Digest for {day} - "
        f"{summary.total_transactions} transactions across {n_tickers} tickers"
    )

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"📊 Daily Insider Trading Digest - {day}", "emoji": True},
        },
        {
            "type": "section",
            "text": _mrkdwn(f"*{summary.total_transactions}* transactions across *{n_tickers}* tickers"),
        },
        {"type": "divider"},
    ]

    for t in summary.tickers:
        blocks.append(
            {
                "type": "section",
                "text": _mrkdwn(
                    f"*{t.label}*\n{t.buy_count} buys, {t.sell_count} sells | Total: {_money(t.total_value)}"
                ),
            }
        )
        if t.top_transactions:
            blocks.append(_context("\n".join(format_digest_line(tx) for tx in t.top_transactions)))
        if t.omitted_count > 0:
            blocks.append(_context(f"_...and {t.omitted_count} more transactions_"))
        blocks.append({"type": "divider"})

    return {"text": fallback, "blocks": blocks}
