"""Upstream listing retrieval and normalization."""

from fundmon.crawler.fetcher import FundFetcher, extract_listing
from fundmon.crawler.normalizer import normalize_record, validate_record

__all__ = [
    "FundFetcher",
    "extract_listing",
    "normalize_record",
    "validate_record",
]
