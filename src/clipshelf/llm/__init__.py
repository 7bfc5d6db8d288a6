from clipshelf.llm.classifier import Classifier, OpenAIClassifier, is_url, parse_suggestion
from clipshelf.llm.prompts import CATEGORIES

__all__ = [
    'CATEGORIES',
    'Classifier',
    'OpenAIClassifier',
    'is_url',
    'parse_suggestion',
]
