"""Tests for merchant uid, billing key and charge name helpers."""

from datetime import date

import pytest

from app.core.exceptions import ValidationError
from app.models.shared import BillingPlan
from app.services.billing_identifiers import (
    billing_key_for,
    charge_name,
    cycle_end_date,
    format_merchant_uid,
    next_merchant_uid,
    parse_merchant_uid,
    parse_plan,
    validate_business_id,
)


class TestMerchantUid:
    def test_format(self):
        assert format_merchant_uid("biz-1", 0) == "biz-1_ch0"
        assert format_merchant_uid("biz-1", 12) == "biz-1_ch12"

    def test_parse(self):
        assert parse_merchant_uid("biz-1_ch12") == ("biz-1", 12)

    def test_next_increments_suffix(self):
        assert next_merchant_uid("biz-1_ch9") == "biz-1_ch10"

    @pytest.mark.parametrize("uid", ["biz-1", "biz-1_ch", "biz-1_chx", "_ch1", "a_b_ch1"])
    def test_parse_rejects_malformed(self, uid):
        with pytest.raises(ValidationError):
            parse_merchant_uid(uid)

    def test_negative_sequence_rejected(self):
        with pytest.raises(ValidationError):
            format_merchant_uid("biz-1", -1)


class TestBusinessId:
    def test_accepts_plain_ids(self):
        assert validate_business_id("4f2a-77") == "4f2a-77"

    @pytest.mark.parametrize("business_id", ["", "has_underscore", "x" * 65, "sp ace"])
    def test_rejects(self, business_id):
        with pytest.raises(ValidationError):
            validate_business_id(business_id)


class TestBillingKey:
    def test_format(self):
        assert billing_key_for("biz-1", "4242") == "biz-1_4242"

    @pytest.mark.parametrize("last4", ["424", "42424", "42a2"])
    def test_rejects_bad_digits(self, last4):
        with pytest.raises(ValidationError):
            billing_key_for("biz-1", last4)


class TestParsePlan:
    def test_known_plans(self):
        assert parse_plan("4_WEEK") == BillingPlan.FOUR_WEEK
        assert parse_plan("52_WEEK").weeks == 52

    def test_unknown_plan(self):
        with pytest.raises(ValidationError, match="billing_plan not supported"):
            parse_plan("1_WEEK")


class TestChargeName:
    def test_cycle_end_is_inclusive(self):
        assert cycle_end_date(date(2026, 3, 2), BillingPlan.FOUR_WEEK) == date(2026, 3, 29)

    def test_name_spans_the_cycle(self):
        name = charge_name("biz-1", date(2026, 3, 2), BillingPlan.FOUR_WEEK)
        assert name == "Subscription #biz-1 3/2 - 3/29 (4_WEEK)"

    def test_name_crosses_year(self):
        name = charge_name("biz-1", date(2026, 12, 20), BillingPlan.FOUR_WEEK)
        assert name == "Subscription #biz-1 12/20 - 1/16 (4_WEEK)"
