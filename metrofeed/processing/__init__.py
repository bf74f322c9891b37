"""
MetroFeed Processing Module
===========================

Category classification and image extraction for normalized articles.
"""

from .classifier import CategoryClassifier
from .image_extractor import ImageExtractor
from .image_optimizer import ImageOptimizer

__all__ = [
    'CategoryClassifier',
    'ImageExtractor',
    'ImageOptimizer',
]
