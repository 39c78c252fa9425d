#!/usr/bin/env python3
"""
Tests for speaker-label normalization and the text helpers it relies on.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analysis.models import AGENT, CUSTOMER
from analysis.normalizer import normalize, parse_conversation, count_speaker_turns
from utils.text.text_processor import TextProcessor


class TestNormalize(unittest.TestCase):

    def test_label_variants(self):
        self.assertEqual(normalize("Rep: hello   Caller: hi"), "agent: hello customer: hi")
        self.assertEqual(normalize("Representative: one Client: two User: three"),
                         "agent: one customer: two customer: three")
        self.assertEqual(normalize("Agent 2: thanks for calling"), "agent: thanks for calling")
        self.assertEqual(normalize("Sarah (Agent): good morning"), "agent: good morning")

    def test_empty_input(self):
        self.assertEqual(normalize(""), "")
        self.assertEqual(normalize(None), "")

    def test_idempotent(self):
        raw = "Rep:  Hello,\n\nhow can I help?\tCaller: My escrow went up."
        once = normalize(raw)
        self.assertEqual(normalize(once), once)


class TestParseConversation(unittest.TestCase):

    def test_preamble_dropped(self):
        messages = parse_conversation("Call started agent: Hello there customer: Hi")
        self.assertEqual([m.role for m in messages], [AGENT, CUSTOMER])
        self.assertEqual([m.text for m in messages], ["Hello there", "Hi"])

    def test_original_case_kept(self):
        messages = parse_conversation("AGENT: Hello Mr. Smith CUSTOMER: Hi")
        self.assertEqual(messages[0].role, AGENT)
        self.assertEqual(messages[0].text, "Hello Mr. Smith")

    def test_unlabelled_text(self):
        self.assertEqual(parse_conversation("no speakers here at all"), [])

    def test_count_speaker_turns(self):
        counts = count_speaker_turns("Rep: a Caller: b agent: c")
        self.assertEqual(counts['agent_turns'], 2)
        self.assertEqual(counts['customer_turns'], 1)
        self.assertEqual(counts['total_messages'], 3)


class TestTextProcessor(unittest.TestCase):

    def test_decode_html_entities(self):
        self.assertEqual(TextProcessor.decode_html_entities("It&#39;s &quot;paid&quot;"), 'It\'s "paid"')
        self.assertEqual(TextProcessor.decode_html_entities("a&#x2F;b&nbsp;c"), "a/b c")
        self.assertIsNone(TextProcessor.decode_html_entities(None))
        self.assertEqual(TextProcessor.decode_html_entities(""), "")

    def test_ampersand_decoded_last(self):
        self.assertEqual(TextProcessor.decode_html_entities("&amp;lt;"), "&lt;")

    def test_tail_text(self):
        self.assertEqual(TextProcessor.tail_text("abcdef", 3), "def")
        self.assertEqual(TextProcessor.tail_text("abc", 10), "abc")
        self.assertEqual(TextProcessor.tail_text(None, 10), "")

    def test_split_words(self):
        self.assertEqual(TextProcessor.split_words("a  b\nc"), ["a", "b", "c"])
        self.assertEqual(len(TextProcessor.split_words("")), 1)


if __name__ == "__main__":
    unittest.main()
