"""Leadership page detection"""
from .leadership_detector import LeadershipDetector, LEADERSHIP_PATTERNS

__all__ = ["LeadershipDetector", "LEADERSHIP_PATTERNS"]
