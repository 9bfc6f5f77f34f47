from .suggest import TestCandidate, accept_suggestion, search_lab_tests, suggest_entries

__all__ = [
    "TestCandidate",
    "accept_suggestion",
    "search_lab_tests",
    "suggest_entries",
]
