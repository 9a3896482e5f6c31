"""
Niti-Setu Scheme Retrieval Service

Ingests government scheme PDFs into a vector-searchable store and answers
eligibility questions by matching user profiles against scheme text.
"""

__version__ = "1.0.0"
__author__ = "Niti-Setu Team"
__description__ = "Semantic search and eligibility checking for government schemes"
