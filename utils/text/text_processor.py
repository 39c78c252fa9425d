#!/usr/bin/env python3
"""
Text Processing Utilities
Provides functions for text manipulation shared by the analysis engine and
the record importers.
"""

import re
import logging
from typing import List, Optional

# Configure logging
logger = logging.getLogger(__name__)

# Entities that show up in exported chat payloads
HTML_ENTITIES = {
    '&#39;': "'",
    '&quot;': '"',
    '&lt;': '<',
    '&gt;': '>',
    '&#x27;': "'",
    '&#x2F;': '/',
    '&nbsp;': ' ',
}


class TextProcessor:
    """Utilities for processing text data"""

    @staticmethod
    def clean_text(text: str) -> str:
        """
        Clean and normalize text

        Args:
            text: Text to clean

        Returns:
            Text with whitespace runs collapsed to one space and trimmed
        """
        if not text:
            return ""

        # Replace multiple spaces with a single space
        text = re.sub(r'\s+', ' ', text)

        # Remove leading/trailing whitespace
        text = text.strip()

        return text

    @staticmethod
    def split_words(text: str) -> List[str]:
        """
        Split text on whitespace runs. An empty string yields one empty token,
        so word counts never reach zero.
        """
        return re.split(r'\s+', text or "")

    @staticmethod
    def tail_text(text: str, max_chars: int) -> str:
        """
        Keep only the last max_chars characters of text

        Args:
            text: Text to shorten
            max_chars: Maximum number of characters to keep

        Returns:
            The text itself when short enough, otherwise its tail
        """
        if not text or max_chars <= 0 or len(text) <= max_chars:
            return text or ""
        return text[-max_chars:]

    @staticmethod
    def decode_html_entities(text: Optional[str]) -> Optional[str]:
        """
        Decode the handful of HTML entities found in exported chat messages

        Args:
            text: Encoded text (None and empty strings are returned unchanged)

        Returns:
            Decoded text
        """
        if not text:
            return text

        for entity, char in HTML_ENTITIES.items():
            text = text.replace(entity, char)
        # Ampersand last so "&amp;lt;" decodes to "&lt;" and not "<"
        return text.replace('&amp;', '&')
