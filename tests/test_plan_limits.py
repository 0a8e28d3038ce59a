"""
Unit tests for plan limit tables.
"""
import logging
import pytest

from screener.core import config
from screener.core.plan_limits import (
    get_plan_limit,
    get_limit_table,
    normalize_plan,
    find_plan_limit_mismatches,
    report_plan_limit_mismatches,
)


def test_billing_table_limits():
    """Test the limits enforced by default."""
    assert get_plan_limit("free", "billing") == 25
    assert get_plan_limit("starter", "billing") == 100
    assert get_plan_limit("pro", "billing") == 250
    assert get_plan_limit("business", "billing") == 1000
    assert get_plan_limit("enterprise", "billing") is None


def test_admin_table_limits():
    """Test the limits shown on the admin screens."""
    assert get_plan_limit("free", "admin") == 25
    assert get_plan_limit("starter", "admin") == 50
    assert get_plan_limit("pro", "admin") == 150
    assert get_plan_limit("business", "admin") == 500
    assert get_plan_limit("enterprise", "admin") is None


def test_active_table_follows_config(monkeypatch):
    """Test that PLAN_LIMIT_TABLE selects the enforced table."""
    monkeypatch.setattr(config, "PLAN_LIMIT_TABLE", "admin")
    assert get_plan_limit("pro") == 150

    monkeypatch.setattr(config, "PLAN_LIMIT_TABLE", "billing")
    assert get_plan_limit("pro") == 250


def test_unknown_table_rejected():
    with pytest.raises(ValueError):
        get_limit_table("marketing")


def test_unknown_plan_falls_back_to_free():
    """Test that unknown or missing plans get the free limit."""
    assert normalize_plan("PLATINUM") == "free"
    assert normalize_plan(None) == "free"
    assert normalize_plan("Pro") == "pro"
    assert get_plan_limit("platinum") == 25


def test_unlimited_plans():
    assert get_plan_limit("enterprise") is None
    assert get_plan_limit("business") == 1000


def test_mismatches_name_the_paid_tiers():
    """Test that the table disagreement is surfaced for starter, pro and business."""
    mismatches = find_plan_limit_mismatches()

    assert set(mismatches) == {"starter", "pro", "business"}
    assert mismatches["starter"] == {"billing": 100, "admin": 50}


def test_mismatches_logged_as_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="screener.core.plan_limits"):
        report_plan_limit_mismatches()

    assert "Plan limit tables disagree" in caplog.text
    assert "starter: billing=100 admin=50" in caplog.text
