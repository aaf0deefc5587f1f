"""Unit tests for feed cursors and message snippets"""

from datetime import datetime

import pytest

from app.core.exceptions import ValidationError
from app.schemas.activity import ExpenseActivity, MessageActivity, activity_entry_adapter
from app.services.activity_service import (decode_cursor, encode_cursor,
                                           message_snippet)


class TestCursor:
    """Test opaque feed cursors"""

    def test_cursor_is_opaque_and_decodable(self):
        position = (datetime(2024, 3, 10, 12, 30, 5, 123456), 42)

        cursor = encode_cursor(position)

        assert isinstance(cursor, str)
        assert decode_cursor(cursor) == position

    @pytest.mark.parametrize("cursor", ["not-base64!!", "e30=", "eyJhdCI6IDF9"])
    def test_invalid_cursor(self, cursor):
        with pytest.raises(ValidationError, match="Invalid feed cursor"):
            decode_cursor(cursor)


class TestMessageSnippet:
    """Test message truncation"""

    def test_short_message_kept(self):
        assert message_snippet("See you at 8") == "See you at 8"

    def test_exactly_fifty_characters_kept(self):
        text = "x" * 50
        assert message_snippet(text) == text

    def test_long_message_truncated(self):
        snippet = message_snippet("y" * 51)
        assert snippet == "y" * 47 + "..."
        assert len(snippet) == 50


class TestActivityVariants:
    """Test the tagged activity union"""

    def test_expense_variant(self):
        entry = activity_entry_adapter.validate_python(
            {
                "type": "expense",
                "id": 1,
                "description": "Alice added lunch",
                "date": datetime(2024, 3, 10),
                "involved_users": [],
                "amount": "12.50",
                "currency": "INR",
                "expense_id": "0b0e3a4e-6f0b-4d35-9a43-2c1b7c0c8d11",
            }
        )
        assert isinstance(entry, ExpenseActivity)

    def test_message_variant_carries_no_amount(self):
        entry = activity_entry_adapter.validate_python(
            {
                "type": "message",
                "id": 2,
                "description": "Bob sent you a message",
                "date": datetime(2024, 3, 10),
                "involved_users": [],
                "message": "hi",
            }
        )
        assert isinstance(entry, MessageActivity)
        assert not hasattr(entry, "amount")
