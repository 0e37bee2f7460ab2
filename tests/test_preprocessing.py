"""
Tests for text preprocessing module.

Tests cover:
- Text cleaning
- Tokenization and stopword removal
- Idempotence and determinism
- Edge cases and validation
"""

import pytest
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from review_analytics.preprocessing import (
    DEFAULT_STOPWORDS,
    MAX_TEXT_LENGTH,
    NEGATIONS,
    TextNormalizer,
    get_text_statistics,
    validate_text,
)


class TestTextCleaning:
    """Tests for text cleaning functionality."""

    def test_clean_html_tags(self, normalizer):
        """Test removal of HTML tags."""
        cleaned = normalizer.clean_text("<p>Hello <b>world</b></p>")
        assert "<" not in cleaned
        assert ">" not in cleaned
        assert cleaned == "hello world"

    def test_clean_html_entities(self, normalizer):
        """Test that HTML entities are decoded before cleaning."""
        assert normalizer.clean_text("Fast &amp; cheap") == "fast cheap"

    def test_clean_urls(self, normalizer):
        """Test removal of URLs."""
        cleaned = normalizer.clean_text("See https://example.com/item?id=3 and www.shop.com now")
        assert "https" not in cleaned
        assert "example" not in cleaned
        assert "shop" not in cleaned
        assert cleaned == "see and now"

    def test_clean_email(self, normalizer):
        """Test removal of email addresses."""
        cleaned = normalizer.clean_text("Contact me at test@example.com")
        assert "@" not in cleaned
        assert cleaned == "contact me at"

    def test_lowercase_conversion(self, normalizer):
        """Test conversion to lowercase."""
        assert normalizer.clean_text("HELLO World") == "hello world"

    def test_contractions_expansion(self, normalizer):
        """Test expansion of contractions."""
        assert normalizer.clean_text("I don't think it's good") == "i do not think it is good"

    def test_curly_apostrophe(self, normalizer):
        """Test that typographic apostrophes expand like plain ones."""
        assert normalizer.clean_text("Doesn’t work") == "does not work"

    def test_punctuation_and_whitespace(self, normalizer):
        """Test punctuation is dropped and whitespace collapsed."""
        assert normalizer.clean_text("  Great!!!   5/5\n\tstars ") == "great 5 5 stars"

    def test_non_string_input(self, normalizer):
        """Test non-string input cleans to an empty string."""
        assert normalizer.clean_text(None) == ""
        assert normalizer.clean_text(42) == ""


class TestNormalization:
    """Tests for token normalization."""

    def test_stopwords_removed(self, normalizer):
        """Test that default stopwords are dropped."""
        tokens = normalizer.normalize("This is the best tablet for the price")
        assert tokens == ["best", "tablet", "price"]

    def test_negations_kept(self, normalizer):
        """Test that negations survive stopword removal."""
        tokens = normalizer.normalize("I don't like it")
        assert "not" in tokens
        assert "like" in tokens

    def test_order_preserved(self, normalizer):
        """Test that tokens keep their order of appearance."""
        assert normalizer.normalize("screen battery screen") == ["screen", "battery", "screen"]

    def test_custom_stopwords(self):
        """Test custom stopword set, matched case-insensitively."""
        normalizer = TextNormalizer(stopwords={"Tablet"})
        assert normalizer.normalize("the Tablet is great") == ["the", "is", "great"]

    def test_empty_stopwords_keeps_everything(self):
        """Test that an empty stopword set keeps all tokens."""
        normalizer = TextNormalizer(stopwords=set())
        assert normalizer.normalize("it is fine") == ["it", "is", "fine"]

    def test_tokenize_keeps_stopwords(self, normalizer):
        """Test that tokenize does not filter stopwords."""
        assert normalizer.tokenize("This is fine") == ["this", "is", "fine"]

    @pytest.mark.parametrize("text", ["", "   ", None, "the and of"])
    def test_empty_results(self, normalizer, text):
        """Test that empty or stopword-only text gives no tokens."""
        assert normalizer.normalize(text) == []

    @pytest.mark.parametrize("text", [
        "Great tablet!! Visit http://x.io <b>now</b>",
        "I can't believe it's NOT butter &amp; jam",
        "Doesn’t charge... 2/10 would NOT buy",
    ])
    def test_idempotent(self, normalizer, text):
        """Test that normalizing already normalized text is a no-op."""
        tokens = normalizer.normalize(text)
        assert normalizer.normalize(" ".join(tokens)) == tokens

    def test_deterministic(self, normalizer):
        """Test same input gives same output across instances."""
        text = "Excellent sound, terrible battery."
        assert normalizer.normalize(text) == TextNormalizer().normalize(text)

    def test_normalize_batch(self, normalizer):
        """Test batch normalization matches single calls."""
        texts = ["Great screen", None, "Awful battery"]
        assert normalizer.normalize_batch(texts) == [["great", "screen"], [], ["awful", "battery"]]

    def test_default_stopwords_lowercase(self):
        """Test that the default stopword list is lowercase."""
        assert all(word == word.lower() for word in DEFAULT_STOPWORDS)
        assert "not" not in DEFAULT_STOPWORDS

    def test_default_stopwords_keep_negations(self):
        """Test the English list is used minus every negation."""
        assert "the" in DEFAULT_STOPWORDS
        assert "whereas" in DEFAULT_STOPWORDS
        assert DEFAULT_STOPWORDS.isdisjoint(NEGATIONS)
        assert DEFAULT_STOPWORDS == ENGLISH_STOP_WORDS - NEGATIONS

    def test_negation_phrases_kept(self, normalizer):
        """Test negation words outlive the default stopword filter."""
        assert normalizer.normalize("never again, nothing works without a reset") == [
            "never", "nothing", "works", "without", "reset",
        ]


class TestValidation:
    """Tests for input validation."""

    def test_valid_text(self):
        """Test valid text passes validation."""
        is_valid, error = validate_text("This is a valid review")
        assert is_valid
        assert error == ""

    def test_none_text(self):
        """Test None fails validation."""
        is_valid, error = validate_text(None)
        assert not is_valid
        assert "None" in error

    def test_empty_text(self):
        """Test whitespace-only text fails validation."""
        is_valid, error = validate_text("   ")
        assert not is_valid
        assert "empty" in error

    def test_non_string(self):
        """Test non-string input fails validation."""
        is_valid, error = validate_text(123)
        assert not is_valid
        assert "int" in error

    def test_too_long(self):
        """Test text over the maximum length fails validation."""
        is_valid, error = validate_text("a" * (MAX_TEXT_LENGTH + 1))
        assert not is_valid
        assert "maximum length" in error


class TestTextStatistics:
    """Tests for text statistics."""

    def test_statistics(self):
        """Test word count statistics."""
        stats = get_text_statistics(["one two", "one two three four"])
        assert stats["total_texts"] == 2
        assert stats["avg_word_count"] == 3.0
        assert stats["min_word_count"] == 2
        assert stats["max_word_count"] == 4

    def test_no_valid_texts(self):
        """Test statistics on invalid input."""
        assert "error" in get_text_statistics([None, 5])
