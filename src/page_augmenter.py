"""
Adds the blog and docs landing pages to the pages sitemap.

The pages host only knows about the marketing pages, so the two landing
pages that live elsewhere are injected at the top of its urlset.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from lxml import etree

from src.models import ChildMap
from src.sitemap_parser import SitemapParser, find_descendants, qualified_tag

logger = logging.getLogger(__name__)

SYNTHETIC_PAGE_SLUGS = ("blog", "docs")
SYNTHETIC_CHANGEFREQ = "weekly"
SYNTHETIC_PRIORITY = "0.75"


def synthetic_locations(canonical_host: str) -> List[str]:
    return [f"{canonical_host}/{slug}" for slug in SYNTHETIC_PAGE_SLUGS]


def is_pages_map(location: str, pages_host_url: str) -> bool:
    """True when `location` is served from the pages host."""
    return urlparse(location).netloc == urlparse(pages_host_url).netloc


def _build_url_element(context: etree._Element, location: str, run_date: date) -> etree._Element:
    url_el = etree.Element(qualified_tag(context, 'url'), nsmap=context.nsmap)
    for name, value in (
        ('loc', location),
        ('changefreq', SYNTHETIC_CHANGEFREQ),
        ('priority', SYNTHETIC_PRIORITY),
        ('lastmod', run_date.isoformat()),
    ):
        etree.SubElement(url_el, qualified_tag(context, name)).text = value
    return url_el


def pages_map_update(body: str, run_date: date, canonical_host: str,
                     parser: Optional[SitemapParser] = None) -> str:
    """
    Insert the synthetic entries before the first <url> of the pages sitemap.

    The result holds, in order: the blog entry, the docs entry, then the
    original entries. A urlset with no <url> gets the entries appended.
    """
    parser = parser or SitemapParser()
    tree = parser.parse(body, source="pages sitemap")
    root = tree.getroot()

    new_elements = [_build_url_element(root, loc, run_date) for loc in synthetic_locations(canonical_host)]

    urls = find_descendants(root, 'url')
    if urls:
        first = urls[0]
        for element in new_elements:
            first.addprevious(element)
    else:
        logger.warning("Pages sitemap has no <url> entries; appending synthetic entries")
        for element in new_elements:
            root.append(element)

    return parser.serialize(tree)


def update_pages_map(children: Iterable[ChildMap], run_date: date, canonical_host: str,
                     pages_host_url: str, parser: Optional[SitemapParser] = None) -> List[ChildMap]:
    """Augment the pages map; every other child passes through unchanged."""
    updated = []
    for child in children:
        if is_pages_map(child.location, pages_host_url):
            logger.info(f"Adding synthetic entries to pages sitemap {child.location}")
            child = ChildMap(
                location=child.location,
                body=pages_map_update(child.body, run_date, canonical_host, parser=parser),
            )
        updated.append(child)
    return updated
