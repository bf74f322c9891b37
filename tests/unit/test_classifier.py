"""
Tests for Category Classifier
=============================
"""

import pytest

from metrofeed.config.catalog import default_categories
from metrofeed.database.models import Category, CategoryTable
from metrofeed.processing.classifier import CategoryClassifier


class TestCategoryClassifier:
    """Keyword-frequency classification."""

    @pytest.fixture
    def classifier(self):
        return CategoryClassifier(default_categories())

    @pytest.fixture
    def small_table(self):
        return CategoryTable.build([
            Category(id="general", name="General", sort_order=0, is_catch_all=True),
            Category(id="sports", name="Sports", sort_order=2, keywords=["football", "goal"]),
            Category(id="economy", name="Economy", sort_order=1, keywords=["budget", "inflation"]),
        ])

    def test_highest_total_wins(self, classifier):
        """Two politics matches beat one agriculture match."""
        category = classifier.classify(
            "Harare parliament debates royalties",
            "Lawmakers questioned the mining sector's contribution.",
        )
        assert category == "politics"

    def test_no_match_goes_to_catch_all(self, classifier):
        assert classifier.classify("Weekend weather outlook", "Sunny skies expected") == "general"

    def test_tie_goes_to_catch_all(self, small_table):
        classifier = CategoryClassifier(small_table)
        assert classifier.classify("Football club budget", "") == "general"

    def test_repeated_keyword_counts_each_occurrence(self, small_table):
        classifier = CategoryClassifier(small_table)
        scores = classifier.score("Goal! Another goal in the football derby", "budget talk")

        assert scores == {"economy": 1, "sports": 3}
        assert classifier.classify("Goal! Another goal in the football derby", "budget talk") == "sports"

    def test_matching_is_case_insensitive(self, small_table):
        classifier = CategoryClassifier(small_table)
        assert classifier.classify("INFLATION hits record", "") == "economy"

    def test_scores_follow_sort_order(self, small_table):
        classifier = CategoryClassifier(small_table)
        assert list(classifier.score("anything").keys()) == ["economy", "sports"]

    def test_catch_all_keywords_are_not_scored(self):
        table = CategoryTable.build([
            Category(id="general", name="General", is_catch_all=True, keywords=["news"]),
            Category(id="sports", name="Sports", sort_order=1, keywords=["football"]),
        ])
        classifier = CategoryClassifier(table)

        assert "general" not in classifier.score("news")
        assert classifier.classify("news news news", "football") == "sports"

    def test_classification_is_deterministic(self, classifier):
        title = "Econet unveils fintech platform for farmers"
        description = "The mobile operator targets tobacco growers."
        results = {classifier.classify(title, description) for _ in range(20)}
        assert len(results) == 1
