from dataclasses import replace

import pytest

from insiderwire.pipeline.router import ROUTE_NONE, ROUTE_URGENT, route_alert, route_transaction


@pytest.mark.parametrize(
    "score,value,expected",
    [
        (4.9, 240_000, ROUTE_NONE),
        (0.5, 250_000, ROUTE_URGENT),
        (5.1, 20_000, ROUTE_URGENT),
        (-7.2, 20_000, ROUTE_URGENT),
        (1.0, 100_000, ROUTE_NONE),
    ],
)
def test_route_alert(score, value, expected):
    assert route_alert(score, value) == expected


def test_route_transaction_uses_config_thresholds(cfg):
    row = {"signal_score": 3.2, "transaction_value": 80_000.0}
    assert route_transaction(row, cfg) == ROUTE_NONE
    assert route_transaction(row, replace(cfg, URGENT_SCORE_THRESHOLD=3.0)) == ROUTE_URGENT
    assert route_transaction(row, replace(cfg, URGENT_VALUE_THRESHOLD=50_000.0)) == ROUTE_URGENT
