"""Listing, detail, leadership and directory extraction modules"""
from .ai_extractor import AIExtractor, InferenceClient
from .field_extractor import FieldExtractor, RenderedPage, ExtractionContext
from .pagination_handler import PaginationWalker
from .detail_fetcher import DetailFetcher
from .leadership_extractor import LeadershipFetcher, load_agency_stubs
from .directory_extractor import DirectoryWalker, DirectoryFetcher, save_agency_list

__all__ = [
    "AIExtractor", "InferenceClient", "FieldExtractor", "RenderedPage", "ExtractionContext",
    "PaginationWalker", "DetailFetcher", "LeadershipFetcher", "load_agency_stubs",
    "DirectoryWalker", "DirectoryFetcher", "save_agency_list",
]
