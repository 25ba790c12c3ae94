"""
Text rewriting applied to fetched documents before they are published
under the canonical domain.

Both rewrites are plain string substitutions on the raw document text.
Each pass is applied until the text stops changing, so sanitizing
already-sanitized text is a no-op.
"""

import logging
import re
from typing import Callable, Iterable, List, Tuple

from src.models import ChildMap

logger = logging.getLogger(__name__)

CMS_SUBDOMAIN_TOKEN = ".ghost"
PAGES_HOST = "cucumber-website.squarespace.com"
CANONICAL_DOMAIN = "cucumber.io"

# xml-stylesheet PIs for both hosts, with the whitespace that follows them
STYLESHEET_PATTERNS = [
    re.compile(r'<\?xml-stylesheet type="text/xsl" href="//cucumber\.io/sitemap\.xsl"\?>\s*'),
    re.compile(r'<\?xml-stylesheet type="text/xsl" href="//cucumber\.ghost\.io/sitemap\.xsl"\?>\s*'),
]

RSS_REWRITES: List[Tuple[str, str]] = [
    ('cucumber.ghost.io/blog/', 'cucumber.io/blog/'),
    ('cucumber.ghost.io/', 'cucumber.io/'),
    ('cucumber.ghost.io/content/', 'cucumber.io/content/'),
]


def _to_fixed_point(text: str, rewrite: Callable[[str], str]) -> str:
    # Repeat only while the text keeps shrinking; a growing table is applied once
    while True:
        rewritten = rewrite(text)
        if rewritten == text or len(rewritten) >= len(text):
            return rewritten
        text = rewritten


def _sitemap_pass(text: str) -> str:
    text = text.replace(CMS_SUBDOMAIN_TOKEN, '')
    for pattern in STYLESHEET_PATTERNS:
        text = pattern.sub('', text)
    return text.replace(PAGES_HOST, CANONICAL_DOMAIN)


def sanitize(text: str) -> str:
    """
    Rewrite a child sitemap body for the canonical domain.

    - drops the CMS subdomain token ('.ghost')
    - removes the sitemap.xsl stylesheet instruction of either host
    - rewrites the pages host to the canonical domain
    """
    return _to_fixed_point(text, _sitemap_pass)


def sanitize_rss(text: str, rewrites: Iterable[Tuple[str, str]] = RSS_REWRITES) -> str:
    """Apply the feed's (from, to) rewrite table in order."""
    rewrites = list(rewrites)

    def _rss_pass(current: str) -> str:
        for source, target in rewrites:
            current = current.replace(source, target)
        return current

    return _to_fixed_point(text, _rss_pass)


def sanitize_children(children: Iterable[ChildMap]) -> List[ChildMap]:
    sanitized = [ChildMap(location=child.location, body=sanitize(child.body)) for child in children]
    logger.debug(f"Sanitized {len(sanitized)} child sitemaps")
    return sanitized
