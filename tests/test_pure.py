import unittest

import db_case  # noqa: F401
from utils.pure import (
    PRICE_ON_REQUEST,
    format_price,
    format_total,
    format_weight,
    generate_markdown_table,
)


class MarkdownTableTestCase(unittest.TestCase):
    def test_headers_and_alignment(self):
        table = generate_markdown_table(["A", "B"], [[1, None], ["x|y", "z"]], ["l", "r"])
        self.assertEqual(
            table.splitlines(),
            [
                "| A | B |",
                "| :--- | ---: |",
                "| 1 |  |",
                "| x\\|y | z |",
            ],
        )

    def test_first_row_as_header(self):
        table = generate_markdown_table(None, [["H"], ["v"]])
        self.assertEqual(table.splitlines()[0], "| H |")
        self.assertEqual(table.splitlines()[1], "| :--- |")

    def test_empty(self):
        self.assertEqual(generate_markdown_table(None, []), "")

    def test_alignment_length_must_match(self):
        with self.assertRaises(ValueError):
            generate_markdown_table(["A", "B"], [], ["l"])


class FormattingTestCase(unittest.TestCase):
    def test_format_price(self):
        self.assertEqual(format_price(None), PRICE_ON_REQUEST)
        self.assertEqual(format_price(1234.5), "1,234.50")
        self.assertEqual(format_price(0), "0.00")

    def test_format_weight(self):
        self.assertEqual(format_weight(None), "")
        self.assertEqual(format_weight(2.5), "2.5 kg")

    def test_format_total(self):
        self.assertEqual(format_total(10, False), "10.00")
        self.assertEqual(format_total(10, True), "10.00 + price on request items")
