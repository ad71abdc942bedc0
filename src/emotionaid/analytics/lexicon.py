"""
Lexicon emotion analyzer: word-list detection of the dominant emotion.

Words are matched whole against a small bilingual (English/Russian)
lexicon. The most frequent emotion wins; ties go to the emotion seen
first. Confidence is the winning count divided by the number of words.
Sarcasm is flagged when any marker phrase appears in the text.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Mapping, Optional, Sequence

from ..models import EmotionAnalysisResult

logger = logging.getLogger("emotionaid.analytics.lexicon")

UNDETERMINED = "undetermined"
SOURCE = "lexicon"

_WORD_RE = re.compile(r"\w+", re.UNICODE)

DEFAULT_LEXICON: dict[str, str] = {
    # joy
    "happy": "joy", "glad": "joy", "joy": "joy", "joyful": "joy", "great": "joy",
    "wonderful": "joy", "excited": "joy", "радость": "joy", "счастлив": "joy",
    "счастлива": "joy", "рад": "joy", "рада": "joy",
    # sadness
    "sad": "sadness", "unhappy": "sadness", "lonely": "sadness", "cry": "sadness",
    "crying": "sadness", "miserable": "sadness", "грусть": "sadness",
    "печаль": "sadness", "грустно": "sadness",
    # anger
    "angry": "anger", "furious": "anger", "mad": "anger", "annoyed": "anger",
    "hate": "anger", "злюсь": "anger", "злой": "anger", "бесит": "anger",
    # fear
    "afraid": "fear", "scared": "fear", "anxious": "fear", "worried": "fear",
    "panic": "fear", "nervous": "fear", "боюсь": "fear", "страшно": "fear",
    "тревожно": "fear",
    # apathy
    "apathy": "apathy", "numb": "apathy", "empty": "apathy", "bored": "apathy",
    "whatever": "apathy", "апатия": "apathy", "безразлично": "apathy",
}

DEFAULT_SARCASM_MARKERS: tuple[str, ...] = (
    "yeah right", "oh great", "very funny", "thanks a lot", "as if",
    "ага, конечно", "ну да", "очень весело", "спасибо, смешно",
)


class LexiconEmotionAnalyzer:
    """Detect the dominant emotion of a text from a word lexicon.

    Args:
        lexicon: Lower-case word to emotion label.
        sarcasm_markers: Lower-case phrases that flag sarcasm.
    """

    def __init__(
        self,
        lexicon: Optional[Mapping[str, str]] = None,
        sarcasm_markers: Optional[Sequence[str]] = None,
    ) -> None:
        self._lexicon = dict(lexicon if lexicon is not None else DEFAULT_LEXICON)
        self._markers = tuple(
            sarcasm_markers if sarcasm_markers is not None else DEFAULT_SARCASM_MARKERS
        )

    def analyze(self, text: str) -> EmotionAnalysisResult:
        """Return the dominant emotion of text.

        Text with no lexicon words yields ``undetermined`` with
        confidence 0.
        """
        lowered = text.lower()
        words = _WORD_RE.findall(lowered)
        is_sarcasm = any(marker in lowered for marker in self._markers)

        counts = Counter(self._lexicon[w] for w in words if w in self._lexicon)
        if not counts:
            return EmotionAnalysisResult(
                emotion=UNDETERMINED, confidence=0.0, is_sarcasm=is_sarcasm, source=SOURCE,
            )

        emotion, hits = counts.most_common(1)[0]
        result = EmotionAnalysisResult(
            emotion=emotion,
            confidence=hits / len(words),
            is_sarcasm=is_sarcasm,
            source=SOURCE,
        )
        logger.debug("Detected %s (%.2f) in %d words", emotion, result.confidence, len(words))
        return result
