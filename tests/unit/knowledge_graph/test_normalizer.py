"""Unit tests for property normalization."""

import unittest
import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from rowgraph.knowledge_graph.normalizer import (
    ValueKind,
    classify,
    key_text,
    normalize_properties,
    normalize_row_maps,
    normalize_value,
)
from rowgraph.utils.constants import MAX_TEXT_LENGTH


class TestNormalizeValue(unittest.TestCase):
    """Test coercion of single values."""

    def test_scalars_preserved(self):
        self.assertIsNone(normalize_value(None))
        self.assertIs(normalize_value(True), True)
        self.assertEqual(normalize_value(1.5), 1.5)
        self.assertEqual(normalize_value("Ada"), "Ada")

    def test_integer_rendered_base_10(self):
        self.assertEqual(normalize_value(1), "1")
        self.assertEqual(normalize_value(-9223372036854775808), "-9223372036854775808")

    def test_bytes_decoded(self):
        self.assertEqual(normalize_value(b"caf\xc3\xa9"), "café")
        self.assertEqual(normalize_value(bytearray(b"abc")), "abc")

    def test_nested_mapping_is_compact_json(self):
        self.assertEqual(normalize_value({"a": 1}), '{"a":1}')
        self.assertEqual(normalize_value({"b": [1, 2], "a": None}), '{"a":null,"b":[1,2]}')

    def test_unserializable_mapping_falls_back_to_text(self):
        class Opaque:
            def __repr__(self):
                return "<opaque>"

        with self.assertLogs("rowgraph.knowledge_graph.normalizer", level="WARNING"):
            result = normalize_value({"a": Opaque()})

        self.assertEqual(result, "{'a': <opaque>}")

    def test_list_is_json_text(self):
        self.assertEqual(normalize_value(["x", 1]), '["x",1]')
        self.assertEqual(normalize_value({"b", "a"}), '["a","b"]')

    def test_long_string_truncated_with_warning(self):
        body = "x" * 20000

        with self.assertLogs("rowgraph.knowledge_graph.normalizer", level="WARNING") as logs:
            result = normalize_value(body, key="body")

        self.assertEqual(len(result), MAX_TEXT_LENGTH)
        self.assertIn("body", logs.output[0])

    def test_string_at_limit_untouched(self):
        text = "y" * MAX_TEXT_LENGTH

        self.assertEqual(normalize_value(text), text)

    def test_timestamps_decimal_uuid(self):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")

        self.assertEqual(normalize_value(datetime(2024, 1, 2, 3, 4, 5)), "2024-01-02T03:04:05")
        self.assertEqual(normalize_value(date(2024, 1, 2)), "2024-01-02")
        self.assertEqual(normalize_value(Decimal("10.50")), "10.50")
        self.assertEqual(normalize_value(Decimal("10.00")), "10")
        self.assertEqual(normalize_value(value), str(value))

    def test_unknown_type_coerced_to_text(self):
        with self.assertLogs("rowgraph.knowledge_graph.normalizer", level="WARNING"):
            self.assertEqual(normalize_value(3 + 4j), "(3+4j)")


@pytest.mark.parametrize(
    "value",
    [
        None,
        True,
        42,
        2.5,
        "plain",
        "z" * 15000,
        b"bytes",
        {"a": {"b": 1}},
        [1, "two", None],
        datetime(2024, 5, 6),
        Decimal("1.1"),
    ],
)
def test_normalization_is_idempotent(value) -> None:
    once = normalize_value(value)

    assert normalize_value(once) == once


def test_classify_checks_bool_before_int() -> None:
    assert classify(True) is ValueKind.BOOL
    assert classify(1) is ValueKind.INT
    assert classify({}) is ValueKind.MAP
    assert classify(()) is ValueKind.LIST


def test_normalize_properties() -> None:
    assert normalize_properties({"id": 1, "meta": {"a": 1}, "ok": False}) == {
        "id": "1",
        "meta": '{"a":1}',
        "ok": False,
    }


def test_normalize_row_maps_only_touches_mappings() -> None:
    row = {"_table": "users", "id": 1, "meta": {"a": 1}, "tags": ["x"]}

    assert normalize_row_maps(row) == {
        "_table": "users",
        "id": 1,
        "meta": '{"a":1}',
        "tags": ["x"],
    }


def test_key_text_canonical_forms() -> None:
    assert key_text(None) is None
    assert key_text(1) == "1"
    assert key_text("1") == "1"
    assert key_text(True) == "true"
    assert key_text(b"k") == "k"
    assert key_text(1.0) == "1"
    assert key_text(-3.0) == "-3"
    assert key_text(1.5) == "1.5"
    assert key_text(Decimal("10.00")) == "10"
    assert key_text(Decimal("10.50")) == "10.50"
    assert key_text(float("nan")) == "nan"
