"""Document classification: keyword scorer, feature scorer and their blend."""
import random
import re
from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional
from shared.config import config
from shared.models import Category, ClassificationResult
import logging

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS: Dict[Category, List[str]] = {
    Category.FINANCIAL: ["invoice", "receipt", "bank", "statement", "tax", "financial", "budget", "expense"],
    Category.LEGAL: ["contract", "agreement", "legal", "law", "court", "judge", "attorney", "lawyer"],
    Category.MEDICAL: ["medical", "health", "doctor", "patient", "diagnosis", "treatment", "prescription"],
    Category.ACADEMIC: ["research", "study", "paper", "thesis", "dissertation", "journal", "academic"],
    Category.BUSINESS: ["business", "company", "corporation", "meeting", "proposal", "project", "plan"],
    Category.PERSONAL: ["personal", "family", "home", "address", "phone", "email", "birthday"],
}

FEATURE_TERMS: Dict[Category, List[str]] = {
    Category.FINANCIAL: ["$", "€", "£", "invoice", "payment", "tax", "bank", "account"],
    Category.LEGAL: ["contract", "agreement", "clause", "legal", "court", "law"],
    Category.MEDICAL: ["patient", "doctor", "medical", "diagnosis", "treatment", "prescription"],
    Category.ACADEMIC: ["research", "study", "university", "thesis", "academic", "journal"],
    Category.BUSINESS: ["company", "business", "meeting", "project", "client", "revenue"],
    Category.PERSONAL: ["personal", "family", "home", "photo", "vacation", "hobby"],
}

LANGUAGE_MARKERS: Dict[str, List[str]] = {
    "en": ["the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"],
    "es": ["el", "la", "y", "o", "pero", "en", "con", "por", "para", "de", "que", "se"],
    "fr": ["le", "la", "et", "ou", "mais", "dans", "sur", "avec", "par", "pour", "de", "que"],
    "de": ["der", "die", "das", "und", "oder", "aber", "in", "auf", "mit", "von", "zu", "für"],
}
DEFAULT_LANGUAGE = "en"

DOCUMENT_TYPES = {
    "application/pdf": "PDF Document",
    "image/jpeg": "JPEG Image",
    "image/png": "PNG Image",
    "image/gif": "GIF Image",
    "application/msword": "Word Document",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "Word Document",
    "application/vnd.ms-excel": "Excel Spreadsheet",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "Excel Spreadsheet",
    "text/plain": "Text Document",
    "text/csv": "CSV File",
}

_MARKER_PATTERNS = {
    lang: [re.compile(rf"(?<=\s){re.escape(word)}(?=\s)") for word in words]
    for lang, words in LANGUAGE_MARKERS.items()
}


class ScorerResult(NamedTuple):
    category: Category
    confidence: float
    keywords: List[str]


class Scorer(ABC):
    """A category scorer; a trained model can implement this interface."""

    @abstractmethod
    def score(self, name: str, text: str) -> ScorerResult:
        ...


class KeywordScorer(Scorer):
    """Counts keyword occurrences in name and text per category."""

    def __init__(self, keywords: Dict[Category, List[str]] = None):
        self.keywords = keywords or CATEGORY_KEYWORDS

    def score(self, name: str, text: str) -> ScorerResult:
        haystack = f"{name} {text}".lower()
        best_category = Category.OTHER
        best_hits = 0
        best_keywords: List[str] = []

        for category, terms in self.keywords.items():
            hits = 0
            found = []
            for term in terms:
                occurrences = haystack.count(term)
                if occurrences:
                    hits += occurrences
                    found.append(term)
            if hits > best_hits:
                best_category, best_hits, best_keywords = category, hits, found

        return ScorerResult(best_category, min(best_hits / 3, 1.0), best_keywords)


class FeatureScorer(Scorer):
    """Heuristic stand-in for a trained model.

    Each category scores the fraction of its feature terms present in the
    text, blended with bounded noise: fraction * (1 - noise) + U(0, noise).
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        noise: float = config.CLASSIFIER_NOISE,
        terms: Dict[Category, List[str]] = None
    ):
        self.rng = rng or random.Random()
        self.noise = max(0.0, min(1.0, noise))
        self.terms = terms or FEATURE_TERMS

    def score(self, name: str, text: str) -> ScorerResult:
        lower_text = text.lower()
        found_by_category = {
            category: [term for term in terms if term in lower_text]
            for category, terms in self.terms.items()
        }
        keywords = [term for found in found_by_category.values() for term in found]
        if not keywords:
            return ScorerResult(Category.OTHER, 0.0, [])

        predictions = {
            category: (len(found) / len(self.terms[category])) * (1 - self.noise) + self.rng.random() * self.noise
            for category, found in found_by_category.items()
        }
        best = max(predictions, key=predictions.get)
        return ScorerResult(best, predictions[best], list(dict.fromkeys(keywords)))


def detect_language(text: str) -> str:
    """Pick the language whose marker words occur most often; ties go to English."""
    padded = f" {text.lower()} "
    counts = {
        lang: sum(len(pattern.findall(padded)) for pattern in patterns)
        for lang, patterns in _MARKER_PATTERNS.items()
    }
    best = max(counts.values())
    leaders = [lang for lang, count in counts.items() if count == best]
    if best == 0 or len(leaders) > 1:
        return DEFAULT_LANGUAGE
    return leaders[0]


def document_type_for(media_type: str) -> str:
    return DOCUMENT_TYPES.get(media_type, "Unknown Document")


class ClassificationEngine:
    """Blends the keyword and feature scorers into one classification."""

    def __init__(
        self,
        keyword_scorer: Scorer = None,
        feature_scorer: Scorer = None,
        keyword_weight: float = config.CLASSIFIER_KEYWORD_WEIGHT,
        feature_weight: float = config.CLASSIFIER_FEATURE_WEIGHT,
        feature_threshold: float = config.CLASSIFIER_FEATURE_THRESHOLD
    ):
        self.keyword_scorer = keyword_scorer or KeywordScorer()
        self.feature_scorer = feature_scorer or FeatureScorer()
        self.keyword_weight = keyword_weight
        self.feature_weight = feature_weight
        self.feature_threshold = feature_threshold

    def classify(self, name: str, media_type: str, extracted_text: str) -> ClassificationResult:
        """Classify a document from its name and extracted text.

        Args:
            name: Original filename
            media_type: Declared media type
            extracted_text: Text from the extractor, possibly empty

        Returns:
            ClassificationResult with category, confidence, keywords,
            document type and detected language
        """
        text = extracted_text or ""
        document_type = document_type_for(media_type)
        language = detect_language(text)
        try:
            keyword_result = self.keyword_scorer.score(name, text)
        except Exception as e:
            logger.warning(f"Keyword scorer failed for {name!r}: {e}")
            keyword_result = ScorerResult(Category.OTHER, 0.0, [])

        try:
            feature_result = self.feature_scorer.score(name, text)
        except Exception as e:
            logger.warning(f"Feature scorer failed for {name!r}, using keyword result: {e}")
            return ClassificationResult(
                category=keyword_result.category,
                confidence=keyword_result.confidence,
                keywords=keyword_result.keywords,
                document_type=document_type,
                language=language
            )

        confidence = keyword_result.confidence * self.keyword_weight + feature_result.confidence * self.feature_weight
        if feature_result.confidence > self.feature_threshold:
            category = feature_result.category
        else:
            category = keyword_result.category

        return ClassificationResult(
            category=category,
            confidence=confidence,
            keywords=list(dict.fromkeys(keyword_result.keywords + feature_result.keywords)),
            document_type=document_type,
            language=language
        )
