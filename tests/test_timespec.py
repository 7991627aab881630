from __future__ import annotations

import unittest


class ParseTests(unittest.TestCase):
    def test_point_forms(self) -> None:
        from mpcremote.core.timespec import Point, parse

        self.assertEqual(parse("90"), Point(90_000))
        self.assertEqual(parse("2:6"), Point(126_000))
        self.assertEqual(parse("01:02:03"), Point(3_723_000))
        self.assertEqual(parse("  00:00:50 "), Point(50_000))

    def test_carry_over(self) -> None:
        from mpcremote.core.timespec import Point, format, parse

        spec = parse("0:90")
        self.assertEqual(spec, Point(90_000))
        self.assertEqual(format(spec), "00:01:30")
        self.assertEqual(format(parse("0:75:70")), "01:16:10")

    def test_range_delimiters(self) -> None:
        from mpcremote.core.timespec import Range, parse

        expected = Range(start_ms=105_000, end_ms=170_000)
        self.assertEqual(parse("01:45-02:50"), expected)
        self.assertEqual(parse("1:45 ~ 2:50"), expected)
        self.assertEqual(parse("01:45至02:50"), expected)

    def test_reversed_or_empty_range_is_rejected(self) -> None:
        from mpcremote.core.timespec import parse

        self.assertIsNone(parse("05:00-02:00"))
        self.assertIsNone(parse("02:00-02:00"))

    def test_malformed_input_returns_none(self) -> None:
        from mpcremote.core.timespec import parse

        for raw in ("", "   ", "abc", "1:2:3:4", "1.5", "-", "01:00-", "1-2-3", "-5", "1::2"):
            with self.subTest(raw=raw):
                self.assertIsNone(parse(raw))
        self.assertIsNone(parse(None))
        self.assertIsNone(parse(42))

    def test_require_raises_parse_error(self) -> None:
        from mpcremote.core.errors import ParseError
        from mpcremote.core.timespec import require

        with self.assertRaises(ParseError):
            require("nope")
        with self.assertRaises(ValueError):
            require("05:00-02:00")


class FormatTests(unittest.TestCase):
    def test_canonical_strings(self) -> None:
        from mpcremote.core.timespec import Point, Range, format

        self.assertEqual(format(Point(5_000)), "00:00:05")
        self.assertEqual(format(Range(10_000, 20_000)), "00:00:10-00:00:20")
        self.assertEqual(format(None), "")

    def test_point_round_trip_is_stable(self) -> None:
        from mpcremote.core.timespec import format, parse

        for raw in ("0", "59", "60", "2:6", "10:00", "1:00:00", "99:59:59", "0:0:3600", "123456"):
            with self.subTest(raw=raw):
                once = parse(raw)
                self.assertIsNotNone(once)
                self.assertEqual(parse(format(once)), once)

    def test_normalize_keeps_unparseable_text(self) -> None:
        from mpcremote.core.timespec import normalize

        self.assertEqual(normalize("1:45-2:50"), "00:01:45-00:02:50")
        self.assertEqual(normalize("soon"), "soon")

    def test_resume_point(self) -> None:
        from mpcremote.core.timespec import Point, Range

        self.assertEqual(Point(3_000).resume_ms, 3_000)
        self.assertEqual(Range(1_000, 4_000).resume_ms, 4_000)
        self.assertTrue(Range(1_000, 4_000).contains(1_000))
        self.assertFalse(Range(1_000, 4_000).contains(4_000))


if __name__ == "__main__":
    unittest.main()
