import logging
from typing import List, Optional, Tuple, Union
from lxml import etree # Using lxml for strict parsing and namespace handling

from src.models import IndexEntry, UrlEntry, RssItem

logger = logging.getLogger(__name__)


class DocumentParseError(ValueError):
    """Raised when a document is empty or not well-formed XML."""


def local_name(element: etree._Element) -> Optional[str]:
    """Tag name without namespace; None for comments and processing instructions."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def find_descendants(root: etree._Element, name: str) -> List[etree._Element]:
    """All elements named `name` below (or at) root, in document order, in any namespace."""
    return [el for el in root.iter() if local_name(el) == name]


def find_child(parent: etree._Element, name: str) -> Optional[etree._Element]:
    for child in parent:
        if local_name(child) == name:
            return child
    return None


def child_text(parent: etree._Element, name: str) -> Optional[str]:
    child = find_child(parent, name)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def qualified_tag(context: etree._Element, name: str) -> str:
    """Tag for a new element in the same default namespace as `context`."""
    namespace = context.nsmap.get(None)
    return f"{{{namespace}}}{name}" if namespace else name


class SitemapParser:
    """Parses documents into lxml trees and serializes them back."""

    def __init__(self):
        logger.debug("SitemapParser initialized.")

    def parse(self, content: Union[str, bytes], source: str = "") -> etree._ElementTree:
        """
        Strictly parses XML content.

        Returns the whole ElementTree rather than the root element so that
        top-level processing instructions are kept on serialization.

        Raises:
            DocumentParseError: on empty or malformed content
        """
        if not content or not content.strip():
            logger.error(f"Cannot parse empty XML content (from {source or 'input'}).")
            raise DocumentParseError(f"Empty XML content from {source or 'input'}")

        # lxml requires bytes when the document carries an encoding declaration
        data = content.encode('utf-8') if isinstance(content, str) else content
        # strip_cdata=False keeps feed descriptions as CDATA instead of escaped text
        parser = etree.XMLParser(
            recover=False, remove_blank_text=True, resolve_entities=False, strip_cdata=False
        )
        try:
            root = etree.fromstring(data, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.error(f"XML syntax error while parsing {source or 'input'}: {e}")
            raise DocumentParseError(f"XMLSyntaxError in {source or 'input'}: {e}") from e
        return root.getroottree()

    def serialize(self, tree: etree._ElementTree) -> str:
        """Serializes a tree to UTF-8 XML text with declaration."""
        return etree.tostring(
            tree, xml_declaration=True, encoding="UTF-8", pretty_print=True
        ).decode("utf-8")


class SitemapIndexView:
    """Read-only view of a <sitemapindex> document."""

    def __init__(self, tree: etree._ElementTree):
        self.tree = tree
        self.entries: Tuple[IndexEntry, ...] = tuple(self._extract_entries(tree.getroot()))

    @staticmethod
    def _extract_entries(root: etree._Element) -> List[IndexEntry]:
        entries = []
        for sitemap_el in find_descendants(root, 'sitemap'):
            loc = child_text(sitemap_el, 'loc')
            if not loc:
                logger.warning("Skipping sitemap entry without <loc> tag.")
                continue
            entries.append(IndexEntry(location=loc, last_modified=child_text(sitemap_el, 'lastmod')))
        logger.debug(f"Extracted {len(entries)} sitemap entries from index.")
        return entries

    @property
    def paths(self) -> List[str]:
        return [entry.path for entry in self.entries]


class ChildMapView:
    """Read-only view of a <urlset> document."""

    def __init__(self, tree: etree._ElementTree):
        self.tree = tree
        self.entries: Tuple[UrlEntry, ...] = tuple(self._extract_entries(tree.getroot()))

    @staticmethod
    def _extract_entries(root: etree._Element) -> List[UrlEntry]:
        url_entries = []
        for url_el in find_descendants(root, 'url'):
            loc = child_text(url_el, 'loc')
            if not loc:
                # A URL entry without a <loc> is invalid according to sitemap protocol, skip it.
                logger.warning("Skipping URL entry without <loc> tag.")
                continue
            url_entries.append(UrlEntry(
                location=loc,
                last_modified=child_text(url_el, 'lastmod'),
                change_frequency=child_text(url_el, 'changefreq'),
                priority=child_text(url_el, 'priority'),
            ))
        logger.debug(f"Extracted {len(url_entries)} URL entries from urlset.")
        return url_entries


class RssFeedView:
    """
    View of an RSS <channel>.

    `generator_element` is the first <generator> element (or None) and is the
    one node the finalizer edits in place.
    """

    def __init__(self, tree: etree._ElementTree):
        self.tree = tree
        root = tree.getroot()
        generators = find_descendants(root, 'generator')
        self.generator_element: Optional[etree._Element] = generators[0] if generators else None
        self.generator: Optional[str] = generators[0].text if generators else None
        self.items: Tuple[RssItem, ...] = tuple(
            RssItem(title=child_text(item, 'title'), link=child_text(item, 'link'))
            for item in find_descendants(root, 'item')
        )
