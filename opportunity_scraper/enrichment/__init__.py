"""
Record enrichment modules
"""
from .normalizer import RecordNormalizer

__all__ = ['RecordNormalizer']
