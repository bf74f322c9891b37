"""
Category Classifier
===================

Keyword-frequency classification. For every category except the catch-all,
count case-insensitive substring occurrences of each keyword in
``title + " " + description``. The single highest total wins; no matches
or a tie for the top total resolve to the catch-all.

Categories are scored in the table's ``sort_order`` so the result depends
only on the inputs and the keyword table.
"""

from typing import Dict, List, Tuple

from ..database.models import CategoryTable
from ..utils.logging import get_logger_for_component


class CategoryClassifier:
    """Assigns a category id to an article."""

    def __init__(self, category_table: CategoryTable):
        """Initialize classifier.

        Args:
            category_table: Ordered categories with catch-all id
        """
        self.category_table = category_table
        self.catch_all_id = category_table.catch_all_id
        self._scoring: List[Tuple[str, List[str]]] = [
            (category.id, list(category.keywords))
            for category in category_table.scoring_categories()
        ]
        self.logger = get_logger_for_component("classifier")

    def score(self, title: str, description: str = "") -> Dict[str, int]:
        """Keyword occurrence totals per scoring category, in table order."""
        text = f"{title or ''} {description or ''}".lower()
        return {
            category_id: sum(text.count(keyword) for keyword in keywords)
            for category_id, keywords in self._scoring
        }

    def classify(self, title: str, description: str = "") -> str:
        """Return the winning category id.

        Args:
            title: Cleaned article title
            description: Cleaned article description

        Returns:
            Category id; the catch-all when nothing matches or the top
            total is shared
        """
        scores = self.score(title, description)

        best_id = self.catch_all_id
        best_total = 0
        tied = False

        for category_id, total in scores.items():
            if total > best_total:
                best_id, best_total, tied = category_id, total, False
            elif total == best_total and total > 0:
                tied = True

        if tied:
            self.logger.debug(
                f"Tie at {best_total} matches, using {self.catch_all_id}",
                extra={"scores": scores},
            )
        if best_total == 0 or tied:
            return self.catch_all_id
        return best_id
