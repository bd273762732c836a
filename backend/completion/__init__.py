"""
AI code completion: provider service and client-side request correlation
"""
from .correlator import CompletionCorrelator
from .models import CompletionOutcome, CompletionResponse, CompletionSuggestion
from .service import CompletionService

__all__ = [
    'CompletionCorrelator',
    'CompletionOutcome',
    'CompletionResponse',
    'CompletionSuggestion',
    'CompletionService',
]
