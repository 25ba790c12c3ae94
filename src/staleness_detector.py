"""
1.0 Staleness Detector
Decides which child sitemaps have to be regenerated on this run.

Two checks:
- CMS children: compared by path against the canonical index, by calendar date
- Pages map: compared entry-by-entry against the pages host, by exact equality
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from src.models import UrlEntry
from src.page_augmenter import synthetic_locations
from src.sitemap_parser import ChildMapView, SitemapIndexView

logger = logging.getLogger(__name__)

# 1.1 The pages map lives on the pages host, not the CMS
PAGES_MAP_PATH = "/sitemap-pages.xml"


def parse_lastmod_date(text: Optional[str]) -> date:
    """
    2.0 Parse a sitemap <lastmod> value into a calendar date.

    Accepts W3C datetime forms ('2024-03-01', '2024-03-01T10:00:00.000Z',
    '2024-03-01T10:00:00+02:00'). The date is taken as written, without
    converting to UTC.

    Raises:
        ValueError: if the value is missing or malformed
    """
    if text is None or not text.strip():
        raise ValueError("Missing <lastmod> value")
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as e:
        raise ValueError(f"Invalid <lastmod> value: {text!r}") from e


def local_index_dates(index: SitemapIndexView) -> Dict[str, date]:
    """
    2.1 Map each child path in our current index to its lastmod date.
    """
    return {entry.path: parse_lastmod_date(entry.last_modified) for entry in index.entries}


def find_children_to_update(cms_index: SitemapIndexView, canonical_index: SitemapIndexView,
                            excluded_paths: Iterable[str] = (PAGES_MAP_PATH,)) -> List[str]:
    """
    3.0 Collect the CMS child locations that need regenerating.

    A child is returned when:
    - its path is not found in our current index, or
    - its lastmod date is newer than the matching entry's date

    Equal dates count as up to date. Order follows the CMS index and each
    location appears once.
    """
    cuke_data = local_index_dates(canonical_index)
    excluded = set(excluded_paths)

    stale: Dict[str, None] = {}
    for entry in cms_index.entries:
        path = entry.path
        if path in excluded:
            continue

        last_mod = parse_lastmod_date(entry.last_modified)
        matched_date = cuke_data.get(path)

        if matched_date is not None and last_mod <= matched_date:
            continue

        logger.debug(f"Stale child {entry.location}: cms={last_mod}, ours={matched_date}")
        stale[entry.location] = None

    logger.info(f"Found {len(stale)} stale child sitemaps out of {len(cms_index.entries)}")
    return list(stale)


def remove_synthetic_entries(entries: Iterable[UrlEntry], canonical_host: str) -> List[UrlEntry]:
    """
    4.0 Drop the entries the page augmenter injects.
    """
    synthetic = set(synthetic_locations(canonical_host))
    return [entry for entry in entries if entry.location not in synthetic]


def urls_and_lastmods(entries: Iterable[UrlEntry]) -> Dict[str, Optional[str]]:
    return {entry.path: entry.last_modified for entry in entries}


def pages_map_needs_update(canonical_pages: ChildMapView, pages_host: ChildMapView,
                           canonical_host: str, log: logging.Logger = logger) -> bool:
    """
    4.1 Compare our published pages map against the pages host's map.

    Synthetic entries are stripped from ours first; then the path -> lastmod
    mappings must match exactly.
    """
    ours = urls_and_lastmods(remove_synthetic_entries(canonical_pages.entries, canonical_host))
    theirs = urls_and_lastmods(pages_host.entries)

    update = ours != theirs
    if update:
        log.info("need to update pages sitemap")
    return update
