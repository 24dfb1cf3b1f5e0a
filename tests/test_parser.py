from datetime import date

import pytest

from insiderwire.sec.parser import (
    DIRECT,
    WRAPPED,
    FieldRule,
    extract_field,
    footnote_text,
    parse_form4,
)

FILED = date(2024, 1, 17)


class TestFieldExtraction:
    def test_wrapped_shape(self):
        assert extract_field("<issuerCik><value> 0000320193 </value></issuerCik>", FieldRule("c", "issuerCik")) == "0000320193"

    def test_direct_shape(self):
        assert extract_field("<issuerCik>0000320193</issuerCik>", FieldRule("c", "issuerCik")) == "0000320193"

    def test_wrapped_wins_over_direct_when_both_present(self):
        text = (
            "<transactionPricePerShare>10</transactionPricePerShare>"
            "<transactionPricePerShare><value>12</value></transactionPricePerShare>"
        )
        assert extract_field(text, FieldRule("price", "transactionPricePerShare")) == "12"

    def test_rule_order_is_respected(self):
        text = (
            "<transactionPricePerShare>10</transactionPricePerShare>"
            "<transactionPricePerShare><value>12</value></transactionPricePerShare>"
        )
        assert extract_field(text, FieldRule("price", "transactionPricePerShare", shapes=(DIRECT, WRAPPED))) == "10"

    def test_missing_and_blank_are_absent(self):
        rule = FieldRule("t", "officerTitle")
        assert extract_field("<other>x</other>", rule) is None
        assert extract_field("<officerTitle>   </officerTitle>", rule) is None
        assert extract_field("<officerTitle><value></value></officerTitle>", rule) is None

    def test_namespaced_tags(self):
        assert extract_field("<ns1:issuerName>Acme &amp; Co</ns1:issuerName>", FieldRule("n", "issuerName")) == "Acme & Co"

    def test_footnote_text_anywhere_in_document(self):
        doc = '<footnotes><footnote id="F2">Sold under a Rule 10b5-1 plan.</footnote></footnotes>'
        assert footnote_text(doc, "F2") == "Sold under a Rule 10b5-1 plan."
        assert footnote_text(doc, "F9") is None


class TestParseForm4:
    def test_issuer_and_insider(self, form4):
        doc = form4(transactions=[{"code": "P"}], is_director="1")
        parsed = parse_form4(doc, "0000320193-24-000001", FILED)

        assert parsed.accession_number == "0000320193-24-000001"
        assert parsed.filing_date == FILED
        assert parsed.issuer.cik == "320193"
        assert parsed.issuer.company_name == "Apple Inc."
        assert parsed.issuer.ticker == "AAPL"
        assert parsed.insider.name == "Cook Timothy"
        assert parsed.insider.title == "Chief Executive Officer"
        assert parsed.insider.is_director is True
        assert parsed.insider.is_officer is True
        assert parsed.insider.is_ten_percent_owner is False
        assert parsed.insider.is_other is False

    def test_optional_fields_absent_not_empty(self, form4):
        parsed = parse_form4(form4(symbol=None, title=None), "acc", FILED)
        assert parsed.issuer.ticker is None
        assert parsed.insider.title is None

    def test_flags_require_literal_one(self, form4):
        parsed = parse_form4(form4(is_director="true", is_officer="Y"), "acc", FILED)
        assert parsed.insider.is_director is False
        assert parsed.insider.is_officer is False

    def test_missing_owner_name_yields_empty_name(self):
        doc = "<ownershipDocument><issuer><issuerCik>1</issuerCik><issuerName>X</issuerName></issuer></ownershipDocument>"
        parsed = parse_form4(doc, "acc", FILED)
        assert parsed.insider.name == ""
        assert parsed.transactions == []

    def test_buy_transaction_fields(self, form4):
        doc = form4(transactions=[{"code": "P", "date": "2024-01-15", "shares": "1,000", "price": "150.25", "post": "25000"}])
        (tx,) = parse_form4(doc, "acc", FILED).transactions

        assert tx.transaction_date == date(2024, 1, 15)
        assert tx.transaction_code == "P"
        assert tx.is_buy is True
        assert tx.shares == 1000.0
        assert tx.price_per_share == 150.25
        assert tx.transaction_value == pytest.approx(150250.0)
        assert tx.post_transaction_shares == 25000.0
        assert tx.is_direct_ownership is True
        assert tx.is_10b5_1 is False
        assert tx.is_derivative is False

    def test_non_open_market_codes_are_excluded(self, form4):
        doc = form4(
            transactions=[
                {"code": "A"},
                {"code": "M"},
                {"code": "S", "shares": "200"},
                {"code": "G"},
            ]
        )
        txs = parse_form4(doc, "acc", FILED).transactions
        assert [t.transaction_code for t in txs] == ["S"]
        assert txs[0].shares == 200.0

    @pytest.mark.parametrize(
        "override",
        [
            {"price": ""},
            {"price": "n/a"},
            {"shares": ""},
            {"date": "not-a-date"},
            {"shares": "0"},
            {"price": "-1"},
        ],
    )
    def test_incomplete_transactions_are_dropped(self, form4, override):
        doc = form4(transactions=[dict({"code": "P"}, **override)])
        assert parse_form4(doc, "acc", FILED).transactions == []

    def test_zero_price_is_kept(self, form4):
        (tx,) = parse_form4(form4(transactions=[{"code": "S", "price": "0"}]), "acc", FILED).transactions
        assert tx.price_per_share == 0.0
        assert tx.transaction_value == 0.0

    def test_missing_post_shares_defaults_to_zero(self, form4):
        (tx,) = parse_form4(form4(transactions=[{"code": "P", "post": None}]), "acc", FILED).transactions
        assert tx.post_transaction_shares == 0.0

    def test_indirect_ownership(self, form4):
        (tx,) = parse_form4(form4(transactions=[{"code": "P", "ownership": "I"}]), "acc", FILED).transactions
        assert tx.is_direct_ownership is False

    def test_trading_plan_footnote(self, form4):
        doc = form4(
            transactions=[{"code": "S", "footnote": "F1"}, {"code": "S", "shares": "5", "footnote": "F2"}],
            footnotes={
                "F1": "The sales were effected pursuant to a Rule 10b5-1 trading plan adopted on May 1.",
                "F2": "Weighted average price.",
            },
        )
        plan, other = parse_form4(doc, "acc", FILED).transactions
        assert plan.is_10b5_1 is True
        assert plan.footnote_ids == ("F1",)
        assert other.is_10b5_1 is False

    def test_plan_cited_in_a_later_footnote(self, form4):
        doc = form4(
            transactions=[{"code": "S", "footnote": ["F1", "F2"]}],
            footnotes={"F1": "Weighted average price.", "F2": "Sold under a Rule 10b5-1 plan."},
        )
        (tx,) = parse_form4(doc, "acc", FILED).transactions
        assert tx.is_10b5_1 is True
        assert tx.footnote_ids == ("F1", "F2")

    def test_reference_to_missing_footnote_is_not_a_plan(self, form4):
        (tx,) = parse_form4(form4(transactions=[{"code": "S", "footnote": "F7"}]), "acc", FILED).transactions
        assert tx.is_10b5_1 is False

    def test_derivative_table_feeds_same_list(self, form4):
        doc = form4(
            transactions=[{"code": "P"}],
            derivative_transactions=[{"code": "S", "shares": "10"}, {"code": "M"}],
        )
        txs = parse_form4(doc, "acc", FILED).transactions
        assert [(t.transaction_code, t.is_derivative) for t in txs] == [("P", False), ("S", True)]

    def test_direct_scalar_shapes(self):
        doc = """
        <ownershipDocument>
          <issuer><issuerCik>0001045810</issuerCik><issuerName>NVIDIA CORP</issuerName><issuerTradingSymbol>NVDA</issuerTradingSymbol></issuer>
          <reportingOwner><reportingOwnerId><rptOwnerName>Huang Jen Hsun</rptOwnerName></reportingOwnerId></reportingOwner>
          <nonDerivativeTable>
            <nonDerivativeTransaction>
              <transactionDate>2024-03-01</transactionDate>
              <transactionCoding><transactionCode>S</transactionCode></transactionCoding>
              <transactionAmounts>
                <transactionShares>120000</transactionShares>
                <transactionPricePerShare>$820.50</transactionPricePerShare>
              </transactionAmounts>
              <ownershipNature><directOrIndirectOwnership>I</directOrIndirectOwnership></ownershipNature>
            </nonDerivativeTransaction>
          </nonDerivativeTable>
        </ownershipDocument>
        """
        parsed = parse_form4(doc, "acc", FILED)
        assert parsed.issuer.cik == "1045810"
        (tx,) = parsed.transactions
        assert tx.transaction_date == date(2024, 3, 1)
        assert tx.shares == 120000.0
        assert tx.price_per_share == 820.5
        assert tx.is_direct_ownership is False

    @pytest.mark.parametrize("doc", ["", "<garbage", "<ownershipDocument><issuer>", None, "<<<>>>"])
    def test_malformed_input_never_raises(self, doc):
        parsed = parse_form4(doc, "acc", FILED)
        assert parsed.transactions == []
        assert parsed.issuer.cik == ""
