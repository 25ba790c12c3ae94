"""
1.0 Parent Merger
Folds the children written on this run back into our sitemap index.

Rules:
- Matching entries (by path) get their <lastmod> set to the run timestamp
- Each refreshed path updates at most one entry
- Paths with no entry are appended after the last existing entry, in order
- Nothing is ever removed
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Tuple
from urllib.parse import urlparse

from lxml import etree

from src.models import MergeReport
from src.sitemap_parser import find_child, find_descendants, child_text, qualified_tag

logger = logging.getLogger(__name__)


def format_run_timestamp(run_started_at: datetime) -> str:
    """
    2.0 ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T10:11:12.345Z
    """
    if run_started_at.tzinfo is None:
        run_started_at = run_started_at.replace(tzinfo=timezone.utc)
    utc = run_started_at.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def _updated_child_times(root: etree._Element, remaining: List[str], timestamp: str) -> List[str]:
    """
    3.0 Stamp existing entries whose path was refreshed; consumes matched paths.
    """
    updated = []
    for sitemap_el in find_descendants(root, 'sitemap'):
        loc = child_text(sitemap_el, 'loc')
        if not loc:
            continue
        path = urlparse(loc).path
        if path not in remaining:
            continue

        lastmod_el = find_child(sitemap_el, 'lastmod')
        if lastmod_el is None:
            lastmod_el = etree.SubElement(sitemap_el, qualified_tag(sitemap_el, 'lastmod'))
        lastmod_el.text = timestamp

        remaining.remove(path)
        updated.append(path)
    return updated


def _add_children(root: etree._Element, paths: List[str], timestamp: str, canonical_host: str) -> None:
    """
    3.1 Append new <sitemap> entries after the last existing one.
    """
    existing = find_descendants(root, 'sitemap')
    anchor = existing[-1] if existing else None

    for path in paths:
        sitemap_el = etree.Element(qualified_tag(root, 'sitemap'), nsmap=root.nsmap)
        etree.SubElement(sitemap_el, qualified_tag(root, 'loc')).text = f"{canonical_host}{path}"
        etree.SubElement(sitemap_el, qualified_tag(root, 'lastmod')).text = timestamp

        if anchor is None:
            root.append(sitemap_el)
        else:
            anchor.addnext(sitemap_el)
        anchor = sitemap_el


def update_parent(parent_tree: etree._ElementTree, refreshed_paths: Iterable[str],
                  run_started_at: datetime, canonical_host: str) -> Tuple[etree._ElementTree, MergeReport]:
    """
    4.0 Merge refreshed child paths into a copy of the parent index.

    Args:
        parent_tree: Our current sitemap index (left untouched)
        refreshed_paths: Paths of the children written on this run
        run_started_at: Run start time, stamped into every touched entry
        canonical_host: Host prefix for newly added entries

    Returns:
        Tuple of (merged tree, MergeReport)
    """
    timestamp = format_run_timestamp(run_started_at)
    tree = copy.deepcopy(parent_tree)
    root = tree.getroot()

    # Working set: de-duplicated, in processing order
    remaining = list(dict.fromkeys(refreshed_paths))

    updated = _updated_child_times(root, remaining, timestamp)
    _add_children(root, remaining, timestamp, canonical_host)

    report = MergeReport(updated_paths=tuple(updated), added_paths=tuple(remaining))
    logger.info(
        f"Merged parent index: {len(report.updated_paths)} updated, "
        f"{len(report.added_paths)} added"
    )
    return tree, report
