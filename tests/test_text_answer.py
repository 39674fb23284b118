"""Tests for typed answer validation."""
import pytest

from interview_coach.exceptions import ValidationError
from interview_coach.services.text_answer import validate_text_answer


class TestValidateTextAnswer:
    def test_nine_characters_rejected(self):
        with pytest.raises(ValidationError):
            validate_text_answer("123456789", min_length=10, max_length=1500)

    def test_ten_characters_accepted(self):
        assert validate_text_answer("1234567890", min_length=10, max_length=1500) == "1234567890"

    def test_whitespace_does_not_count(self):
        with pytest.raises(ValidationError):
            validate_text_answer("   short    ", min_length=10, max_length=1500)

    def test_truncated(self):
        assert len(validate_text_answer("a" * 2000, min_length=10, max_length=1500)) == 1500

    def test_html_escaped(self):
        result = validate_text_answer("<b>I led</b> the \"team\" & 'shipped'", min_length=10, max_length=1500)

        assert result == "&lt;b&gt;I led&lt;/b&gt; the &quot;team&quot; &amp; &#x27;shipped&#x27;"

    def test_none_rejected(self):
        with pytest.raises(ValidationError):
            validate_text_answer(None)
