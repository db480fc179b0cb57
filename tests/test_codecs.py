from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from bson import ObjectId
from bson.decimal128 import Decimal128

from mini_odm import ConfigurationError, MappingError
from mini_odm.core.codecs import (
    EMPTY_OBJECT_ID,
    decode_identity,
    decode_value,
    encode_identity,
    encode_value,
    is_empty_identity,
    new_identity,
    to_utc,
    zero_value,
)


class Priority(Enum):
    LOW = 1
    HIGH = 2


class ScalarCodecTests(unittest.TestCase):
    def test_scalars_round_trip(self) -> None:
        samples: list[tuple[Any, Any]] = [
            ("text", str),
            (True, bool),
            (42, int),
            (3.5, float),
            (Decimal("12.50"), Decimal),
            (datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc), datetime),
            (date(2024, 5, 1), date),
            (ObjectId(), ObjectId),
            (uuid4(), UUID),
            (b"\x00\x01", bytes),
            (Priority.HIGH, Priority),
        ]
        for value, annotation in samples:
            with self.subTest(annotation=annotation):
                encoded = encode_value(value, annotation)
                self.assertEqual(decode_value(encoded, annotation), value)

    def test_stored_representations(self) -> None:
        self.assertEqual(encode_value(Priority.LOW, Priority), "LOW")
        self.assertEqual(encode_value(2, Priority), "HIGH")
        self.assertIsInstance(encode_value(Decimal("1.10"), Decimal), Decimal128)
        self.assertEqual(encode_value(7, float), 7.0)
        self.assertIsInstance(encode_value(7, float), float)

        value = uuid4()
        self.assertEqual(encode_value(value, UUID), str(value))

        stored_date = encode_value(date(2024, 1, 2), date)
        self.assertEqual(stored_date, datetime(2024, 1, 2, tzinfo=timezone.utc))

    def test_datetimes_are_stored_as_utc_milliseconds(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        local = datetime(2024, 5, 1, 14, 0, 0, 123456, tzinfo=plus_two)

        encoded = encode_value(local, datetime)

        self.assertEqual(encoded.tzinfo, timezone.utc)
        self.assertEqual(encoded, datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc))

    def test_naive_datetimes_are_taken_as_utc(self) -> None:
        naive = datetime(2024, 5, 1, 12, 0)
        self.assertEqual(to_utc(naive), naive.replace(tzinfo=timezone.utc))
        decoded = decode_value(naive, datetime)
        self.assertEqual(decoded.tzinfo, timezone.utc)

    def test_lenient_scalar_decoding(self) -> None:
        self.assertEqual(decode_value("17", int), 17)
        self.assertEqual(decode_value(17.9, int), 17)
        self.assertEqual(decode_value(Decimal128("5"), int), 5)
        self.assertEqual(decode_value("2.5", float), 2.5)
        self.assertEqual(decode_value(1, bool), True)
        self.assertEqual(decode_value("no", bool), False)
        self.assertEqual(decode_value(99, str), "99")
        self.assertEqual(decode_value("2024-05-01", date), date(2024, 5, 1))
        self.assertEqual(
            decode_value("2024-05-01T10:00:00Z", datetime),
            datetime(2024, 5, 1, 10, tzinfo=timezone.utc),
        )
        oid = ObjectId()
        self.assertEqual(decode_value(str(oid), ObjectId), oid)

    def test_unparseable_values_raise_mapping_error(self) -> None:
        cases = [
            ("abc", int),
            ("abc", float),
            ("maybe", bool),
            ("not-a-date", datetime),
            ("xyz", ObjectId),
            ("nope", UUID),
            ("MEDIUM", Priority),
            (3, Priority),
            ("abc", Decimal),
        ]
        for raw, annotation in cases:
            with self.subTest(raw=raw, annotation=annotation):
                with self.assertRaises(MappingError):
                    decode_value(raw, annotation, field_name="value")

    def test_mapping_error_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            decode_value("MEDIUM", Priority)

    def test_invalid_enum_on_encode_raises(self) -> None:
        with self.assertRaises(MappingError):
            encode_value(5, Priority, field_name="priority")

    def test_none_is_passed_through(self) -> None:
        self.assertIsNone(encode_value(None, int))
        self.assertIsNone(decode_value(None, int))


class ContainerCodecTests(unittest.TestCase):
    def test_sequences_and_mappings_round_trip(self) -> None:
        samples: list[tuple[Any, Any]] = [
            (["a", "b"], list[str]),
            ((1, 2, 3), tuple[int, ...]),
            ({1, 2}, set[int]),
            ({"a": 1, "b": 2}, dict[str, int]),
            ({"x": [Priority.LOW]}, dict[str, list[Priority]]),
            (None, Optional[list[int]]),
        ]
        for value, annotation in samples:
            with self.subTest(annotation=annotation):
                self.assertEqual(decode_value(encode_value(value, annotation), annotation), value)

    def test_containers_encode_to_arrays_and_sub_documents(self) -> None:
        self.assertEqual(encode_value((1, 2), tuple[int, ...]), [1, 2])
        self.assertEqual(encode_value({Priority.LOW: 1}, dict), {"LOW": 1})
        self.assertEqual(
            encode_value([date(2024, 1, 1)], list[date]),
            [datetime(2024, 1, 1, tzinfo=timezone.utc)],
        )

    def test_shape_mismatch_raises(self) -> None:
        with self.assertRaises(MappingError):
            decode_value("not a list", list[str], field_name="tags")
        with self.assertRaises(MappingError):
            decode_value(["a"], dict[str, int], field_name="counts")

    def test_untyped_values_decode_to_plain_containers(self) -> None:
        raw = {"a": [1, {"b": 2}]}
        decoded = decode_value(raw, Any)
        self.assertEqual(decoded, raw)
        self.assertIsNot(decoded, raw)


class ZeroValueTests(unittest.TestCase):
    def test_zero_values_per_type(self) -> None:
        self.assertEqual(zero_value(str), "")
        self.assertIs(zero_value(bool), False)
        self.assertEqual(zero_value(int), 0)
        self.assertEqual(zero_value(float), 0.0)
        self.assertEqual(zero_value(list[str]), [])
        self.assertEqual(zero_value(dict[str, int]), {})
        self.assertEqual(zero_value(set[int]), set())
        self.assertEqual(zero_value(tuple[int, ...]), ())
        self.assertIsNone(zero_value(Optional[int]))
        self.assertIsNone(zero_value(datetime))
        self.assertIsNone(zero_value(Priority))


class IdentityCodecTests(unittest.TestCase):
    def test_empty_identity_sentinels(self) -> None:
        self.assertTrue(is_empty_identity(None))
        self.assertTrue(is_empty_identity(""))
        self.assertTrue(is_empty_identity(EMPTY_OBJECT_ID))
        self.assertFalse(is_empty_identity(0))
        self.assertFalse(is_empty_identity(ObjectId()))
        self.assertFalse(is_empty_identity("abc"))

    def test_hex_strings_are_stored_as_object_ids(self) -> None:
        oid = ObjectId()

        self.assertEqual(encode_identity(str(oid), str), oid)
        self.assertEqual(encode_identity(str(oid)), oid)
        self.assertEqual(encode_identity("user-1", str), "user-1")
        self.assertEqual(encode_identity(7, int), 7)
        self.assertIsNone(encode_identity("", str))

    def test_identity_decodes_to_declared_type(self) -> None:
        oid = ObjectId()
        value = uuid4()

        self.assertEqual(decode_identity(oid, str), str(oid))
        self.assertEqual(decode_identity(oid, ObjectId), oid)
        self.assertEqual(decode_identity(oid, Any), oid)
        self.assertEqual(decode_identity(str(value), UUID), value)
        self.assertEqual(decode_identity(11, int), 11)

    def test_incompatible_identity_shapes_raise(self) -> None:
        with self.assertRaises(MappingError):
            decode_identity({"nested": 1}, str)
        with self.assertRaises(MappingError):
            decode_identity(ObjectId(), int)

    def test_new_identity_per_type(self) -> None:
        self.assertIsInstance(new_identity(ObjectId), ObjectId)
        self.assertIsInstance(new_identity(Optional[ObjectId]), ObjectId)
        generated = new_identity(str)
        self.assertTrue(ObjectId.is_valid(generated))
        self.assertIsInstance(new_identity(UUID), UUID)
        with self.assertRaises(ConfigurationError):
            new_identity(int)


if __name__ == "__main__":
    unittest.main()
