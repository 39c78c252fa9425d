#!/usr/bin/env python3
"""
Tests for regex entity extraction.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analysis.entity_extraction import (
    extract_entities, extract_loan_numbers, extract_customer_names, extract_phone_numbers, extract_dates
)


class TestEntityExtraction(unittest.TestCase):

    def test_loan_numbers(self):
        self.assertEqual(extract_loan_numbers("Loan #12345678 and 9876543210"), ['9876543210', '12345678'])
        self.assertEqual(extract_loan_numbers("reference RLN1234567"), ['RLN1234567'])
        self.assertEqual(extract_loan_numbers("loan 123"), [])

    def test_names_skip_excluded_words(self):
        names = extract_customer_names("My name is John Smith and I called Customer Service")
        self.assertEqual(names, ['John Smith'])

    def test_names_capped(self):
        text = "Anna Lee, Bob Ray, Cara Day, Dan Fox, Eve Kim, Fay Lin, Gus Moe"
        self.assertEqual(len(extract_customer_names(text)), 5)

    def test_phone_numbers_are_digits(self):
        self.assertEqual(extract_phone_numbers("call me at 555-123-4567 or 555.123.4567"), ['5551234567'])

    def test_dates(self):
        self.assertEqual(extract_dates("due 12/05/2025 or January 5, 2026"), ['12/05/2025', 'January 5, 2026'])

    def test_extract_entities(self):
        entities = extract_entities(
            "Email jane.doe@example.com, I owe $1,234.56 and live at 123 Main Street."
        )
        self.assertEqual(entities.email_addresses, ['jane.doe@example.com'])
        self.assertEqual(entities.amounts, ['$1,234.56'])
        self.assertEqual(entities.addresses, ['123 Main Street'])

    def test_empty_text(self):
        entities = extract_entities(None)
        self.assertEqual(entities.loan_numbers, [])
        self.assertEqual(entities.customer_names, [])


if __name__ == "__main__":
    unittest.main()
