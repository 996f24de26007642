"""Query and path parameter parsing."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from pymongo import ASCENDING, DESCENDING

from gradebook.utils.params import (
    ParamError,
    parse_id_filter,
    parse_int_arg,
    parse_level_name,
    parse_paging_params,
)

SORT_FIELDS = {"name": "name", "level": "level"}


class PagingParamsTestCase(unittest.TestCase):
    def test_defaults(self) -> None:
        paging = parse_paging_params({}, allowed_sort_fields=SORT_FIELDS, default_sort="name")
        self.assertEqual(1, paging.page)
        self.assertEqual(20, paging.page_size)
        self.assertEqual(("name", ASCENDING), paging.sort)
        self.assertEqual(0, paging.skip)

    def test_descending_sort_and_skip(self) -> None:
        paging = parse_paging_params(
            {"page": "3", "page_size": "10", "sort": "-level"},
            allowed_sort_fields=SORT_FIELDS,
            default_sort="name",
        )
        self.assertEqual(("level", DESCENDING), paging.sort)
        self.assertEqual("-level", paging.normalized_sort)
        self.assertEqual(20, paging.skip)

    def test_invalid_values(self) -> None:
        for args in (
            {"page": "0"},
            {"page": "x"},
            {"page_size": "101"},
            {"sort": "email"},
        ):
            with self.subTest(args=args):
                with self.assertRaises(ParamError):
                    parse_paging_params(
                        args, allowed_sort_fields=SORT_FIELDS, default_sort="name"
                    )

    def test_sort_error_lists_options(self) -> None:
        with self.assertRaises(ParamError) as ctx:
            parse_paging_params(
                {"sort": "email"}, allowed_sort_fields=SORT_FIELDS, default_sort="name"
            )
        self.assertEqual("sort must be one of: level, -level, name, -name.", str(ctx.exception))


class PathParamsTestCase(unittest.TestCase):
    def test_int_arg_without_default_is_required(self) -> None:
        with self.assertRaises(ParamError):
            parse_int_arg("", name="partial")
        self.assertEqual(2, parse_int_arg("2", name="partial", minimum=1, maximum=3))

    def test_level_name(self) -> None:
        self.assertEqual("Basic 1", parse_level_name("  Basic 1 "))
        for bad in ("", "   ", "A1.2", "$where"):
            with self.subTest(level=bad):
                with self.assertRaises(ParamError):
                    parse_level_name(bad)

    def test_id_filter_treats_all_as_no_filter(self) -> None:
        self.assertIsNone(parse_id_filter(None))
        self.assertIsNone(parse_id_filter("all"))
        self.assertIsNone(parse_id_filter("  "))
        self.assertEqual("g1", parse_id_filter(" g1 "))


if __name__ == "__main__":
    unittest.main()
