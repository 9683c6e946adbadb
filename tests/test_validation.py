"""
Tests for request validation helpers.
"""

import json
import random

import pytest

from shared.errors import ValidationError
from shared.request_utils import get_header, get_origin, parse_json_body
from shared.validation import (
    is_valid_date,
    is_valid_email,
    normalize_email,
    parse_iso_timestamp,
    random_timestamps,
)


class TestDates:
    """Tests for ISO-8601 date handling."""

    @pytest.mark.parametrize("value", ["2023-02-15T00:00:00Z", "2023-02-15T23:59:59.123Z"])
    def test_valid_dates(self, value):
        assert is_valid_date(value) is True

    @pytest.mark.parametrize(
        "value",
        ["2023-02-15", "2023-02-15T00:00:00", "2023-02-30T00:00:00Z", "15/02/2023", "", None, 1676419200],
    )
    def test_invalid_dates(self, value):
        assert is_valid_date(value) is False

    def test_parse_to_epoch_seconds(self):
        assert parse_iso_timestamp("2023-02-15T00:00:00Z") == 1676419200


class TestEmails:
    """Tests for email helpers."""

    def test_normalize(self):
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
        assert normalize_email(None) is None

    @pytest.mark.parametrize("email, valid", [("a@b.co", True), ("a@b", False), ("no-at.example.com", False), (42, False)])
    def test_is_valid_email(self, email, valid):
        assert is_valid_email(email) is valid


class TestRandomTimestamps:
    """Tests for random_timestamps()."""

    def test_sorted_within_range(self):
        stamps = random_timestamps("2023-02-01T00:00:00Z", "2023-02-15T00:00:00Z", 20, rng=random.Random(7))

        assert len(stamps) == 20
        assert stamps == sorted(stamps)
        assert all(1675209600 <= s <= 1676419200 for s in stamps)

    def test_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            random_timestamps("2023-02-15T00:00:00Z", "2023-02-01T00:00:00Z", 3)


class TestRequestUtils:
    """Tests for request parsing helpers."""

    def test_parse_json_body(self):
        assert parse_json_body({"body": json.dumps({"email": "a@b.co"})}) == {"email": "a@b.co"}

    def test_empty_body_is_empty_object(self):
        assert parse_json_body({"body": None}) == {}

    @pytest.mark.parametrize("body", ["{bad", "[1, 2]", '"text"'])
    def test_rejects_non_object_bodies(self, body):
        with pytest.raises(ValidationError):
            parse_json_body({"body": body})

    def test_header_lookup_is_case_insensitive(self):
        event = {"headers": {"Stripe-Signature": "t=1", "origin": "https://subsync.dev"}}

        assert get_header(event, "stripe-signature") == "t=1"
        assert get_origin(event) == "https://subsync.dev"
        assert get_header({"headers": None}, "origin") is None
