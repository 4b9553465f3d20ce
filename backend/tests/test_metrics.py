"""
Writegy Backend - Document Metrics Tests
==========================================

What we test:
    ✅ Word and non-whitespace character counts
    ✅ None, empty and whitespace-only content
    ✅ Tabs, newlines and punctuation
"""

import pytest

from app.services.metrics import EMPTY_METRICS, calculate_metrics


class TestCalculateMetrics:

    def test_simple_sentence(self):
        metrics = calculate_metrics("Hello world")
        assert metrics.word_count == 2
        assert metrics.character_count == 10

    @pytest.mark.parametrize("content", [None, "", "   ", "\n\t  \n"])
    def test_blank_content_is_zero(self, content):
        assert calculate_metrics(content) == EMPTY_METRICS

    def test_mixed_whitespace_separates_words(self):
        metrics = calculate_metrics("  one\ttwo\nthree   four  ")
        assert metrics.word_count == 4
        assert metrics.character_count == len("onetwothreefour")

    def test_punctuation_counts_as_characters(self):
        metrics = calculate_metrics("Hi, there!")
        assert metrics.word_count == 2
        assert metrics.character_count == 9

    def test_repeatable(self):
        text = "The quick brown fox."
        assert calculate_metrics(text) == calculate_metrics(text)
