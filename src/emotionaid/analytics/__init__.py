"""Mood tracking: session ratings, points and lexicon emotion analysis."""

from .lexicon import LexiconEmotionAnalyzer
from .repository import AnalyticsRepository

__all__ = ["AnalyticsRepository", "LexiconEmotionAnalyzer"]
