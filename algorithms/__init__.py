from .math_tools import MathTools
from .trigram import similarity, trigrams
from .text_tools import format_tag, normalize_name, search_terms_for

__all__ = [
    "MathTools",
    "similarity",
    "trigrams",
    "format_tag",
    "normalize_name",
    "search_terms_for",
]
