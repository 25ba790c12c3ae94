"""
Prepares the CMS RSS feed for publishing on the canonical blog.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from src.sanitizer import sanitize_rss
from src.sitemap_parser import SitemapParser, RssFeedView

logger = logging.getLogger(__name__)

GENERATOR_SUFFIX = " & Cucumber"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def rss_needs_update(cms_last_modified: Optional[datetime],
                     canonical_last_modified: Optional[datetime]) -> bool:
    """True only when the CMS feed is strictly newer; a missing time counts as the epoch."""
    cms = cms_last_modified or EPOCH
    ours = canonical_last_modified or EPOCH
    return cms > ours


def update_generator(body: str, suffix: str = GENERATOR_SUFFIX, parser: Optional[SitemapParser] = None) -> str:
    """Append `suffix` to the feed's first <generator> text."""
    parser = parser or SitemapParser()
    feed = RssFeedView(parser.parse(body, source="rss feed"))

    if feed.generator_element is None:
        logger.warning("RSS feed has no <generator> element; leaving it unchanged")
    else:
        feed.generator_element.text = (feed.generator or '') + suffix

    return parser.serialize(feed.tree)


def finalize_rss(body: str, parser: Optional[SitemapParser] = None) -> str:
    return update_generator(sanitize_rss(body), parser=parser)
