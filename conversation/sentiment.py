"""
Bag-of-words sentiment scoring.
"""

from typing import Optional

from .patterns import SentimentLexicon

SENTIMENT_STEP = 0.1


class SentimentAnalyzer:
    """Scores text in [-1, 1]: +0.1 per positive token, -0.1 per negative token."""

    def __init__(self, lexicon: Optional[SentimentLexicon] = None):
        self.lexicon = lexicon or SentimentLexicon()

    def analyze(self, message: Optional[str]) -> float:
        score = 0.0
        for token in (message or "").lower().split():
            # A token can carry both a positive and a negative stem
            if any(stem in token for stem in self.lexicon.positive):
                score += SENTIMENT_STEP
            if any(stem in token for stem in self.lexicon.negative):
                score -= SENTIMENT_STEP
        return round(max(-1.0, min(1.0, score)), 4)
