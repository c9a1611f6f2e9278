"""
API Clients
===========

- divar.py: Divar post-list search (the listing source)
"""

from .divar import DivarClient, SearchRequest, parse_search_request, parse_search_response

__all__ = [
    "DivarClient",
    "SearchRequest",
    "parse_search_request",
    "parse_search_response",
]
