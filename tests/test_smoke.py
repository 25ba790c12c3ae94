"""
SMOKE TESTS - Fast, Deterministic, No Network

Run: py -m pytest tests/test_smoke.py
Time: < 2 seconds

Unit tests for each pipeline stage: parsing, staleness, sanitizing,
page augmentation, parent merging and the RSS finalizer.
"""

import sys
import json
from pathlib import Path
from datetime import date, datetime, timezone

import pytest
from lxml import etree

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.config import load_config, validate_config, merge_config
from src.page_augmenter import pages_map_update, update_pages_map, is_pages_map
from src.parent_merger import update_parent, format_run_timestamp
from src.rss_finalizer import rss_needs_update, update_generator, finalize_rss
from src.sanitizer import sanitize, sanitize_rss, sanitize_children
from src.models import ChildMap, IndexEntry
from src.sitemap_parser import (
    SitemapParser, SitemapIndexView, ChildMapView, RssFeedView, DocumentParseError,
)
from src.staleness_detector import (
    find_children_to_update, pages_map_needs_update, parse_lastmod_date, remove_synthetic_entries,
)
from tests.fakes import CMS_INDEX, CUKE_INDEX, CUKE_PAGES, PAGES_HOST, PAGES_HOST_CHANGED, CMS_RSS

CANONICAL_HOST = "https://cucumber.io"
PAGES_HOST_URL = "https://cucumber-website.squarespace.com/sitemap.xml"
SM = "http://www.sitemaps.org/schemas/sitemap/0.9"

parser = SitemapParser()


def index_view(entries):
    """Build a SitemapIndexView from (loc, lastmod) pairs."""
    body = "".join(f"<sitemap><loc>{loc}</loc><lastmod>{lastmod}</lastmod></sitemap>" for loc, lastmod in entries)
    return SitemapIndexView(parser.parse(f'<sitemapindex xmlns="{SM}">{body}</sitemapindex>'))


# =============================================================================
# 1. CONFIG
# =============================================================================

def test_config_defaults_when_file_missing(tmp_path):
    config = load_config(str(tmp_path / "missing.json"))
    assert config["canonical_host"] == "https://cucumber.io"
    assert config["sources"]["pages_host_sitemap"] == PAGES_HOST_URL


def test_config_overrides_merge_into_sections(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout": 5, "output": {"sitemap_dir": "out/maps"}}))
    config = load_config(str(path))
    assert config["timeout"] == 5
    assert config["output"]["sitemap_dir"] == "out/maps"
    # 1.1 untouched keys in the same section keep their defaults
    assert config["output"]["rss_file"] == "./static/rss/rss.xml"


def test_config_invalid_json_returns_none(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert load_config(str(path)) is None


def test_config_rejects_non_url_source():
    config = merge_config({"sources": {"cms_rss_feed": "ftp://cucumber.ghost.io/rss/"}})
    assert validate_config(config) is False


def test_config_accepts_local_path_for_our_own_index():
    config = merge_config({"sources": {
        "canonical_sitemap_index": "./static/sitemaps/sitemap.xml",
        "canonical_pages_map": "./static/sitemaps/sitemap-pages.xml",
    }})
    assert validate_config(config) is True
    # 1.1 upstream sources must stay remote
    config["sources"]["cms_sitemap_index"] = "./sitemap.xml"
    assert validate_config(config) is False


def test_shipped_config_is_valid():
    assert load_config(str(PROJECT_ROOT / "config.json")) is not None


# =============================================================================
# 2. PARSING
# =============================================================================

def test_index_view_reads_entries_in_document_order():
    view = SitemapIndexView(parser.parse(CUKE_INDEX))
    assert view.paths == ["/sitemap-pages.xml", "/sitemap-posts.xml", "/sitemap-authors.xml"]
    assert view.entries[1] == IndexEntry("https://cucumber.io/sitemap-posts.xml", "2024-03-01T23:59:59.000Z")


def test_child_map_view_reads_url_fields():
    view = ChildMapView(parser.parse(CUKE_PAGES))
    assert len(view.entries) == 4
    blog = view.entries[0]
    assert (blog.change_frequency, blog.priority, blog.last_modified) == ("weekly", "0.75", "2024-01-01")


def test_parse_keeps_processing_instructions():
    tree = parser.parse(CMS_INDEX)
    assert "xml-stylesheet" in parser.serialize(tree)


def test_unnamespaced_documents_parse():
    view = SitemapIndexView(parser.parse("<sitemapindex><sitemap><loc>https://x.io/a.xml</loc></sitemap></sitemapindex>"))
    assert view.paths == ["/a.xml"]


@pytest.mark.parametrize("content", ["", "   ", "<urlset><url><loc>broken"])
def test_malformed_xml_raises(content):
    with pytest.raises(DocumentParseError):
        parser.parse(content)


def test_rss_view_reads_generator_and_items():
    view = RssFeedView(parser.parse(CMS_RSS))
    assert view.generator == "Ghost 5.80"
    assert [item.title for item in view.items] == ["Hello"]


# =============================================================================
# 3. STALENESS
# =============================================================================

def test_lastmod_dates_are_calendar_dates():
    assert parse_lastmod_date("2024-03-01") == date(2024, 3, 1)
    assert parse_lastmod_date("2024-03-01T23:59:59.000Z") == date(2024, 3, 1)
    # 3.1 the date is taken as written, not shifted to UTC
    assert parse_lastmod_date("2024-03-01T23:30:00-05:00") == date(2024, 3, 1)


@pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-01"])
def test_malformed_lastmod_raises(value):
    with pytest.raises(ValueError):
        parse_lastmod_date(value)


def test_newer_and_missing_children_are_stale():
    canonical = index_view([("https://cucumber.io/a", "2024-01-01"), ("https://cucumber.io/b", "2024-01-05")])
    cms = index_view([
        ("https://cucumber.ghost.io/a", "2024-01-02"),
        ("https://cucumber.ghost.io/b", "2024-01-05"),
        ("https://cucumber.ghost.io/c", "2024-01-01"),
    ])
    assert find_children_to_update(cms, canonical) == [
        "https://cucumber.ghost.io/a",
        "https://cucumber.ghost.io/c",
    ]


def test_same_day_timestamps_are_not_stale():
    canonical = index_view([("https://cucumber.io/a", "2024-01-01T01:00:00.000Z")])
    cms = index_view([("https://cucumber.ghost.io/a", "2024-01-01T22:00:00.000Z")])
    assert find_children_to_update(cms, canonical) == []


def test_pages_map_is_excluded_from_date_check():
    stale = find_children_to_update(SitemapIndexView(parser.parse(CMS_INDEX)), SitemapIndexView(parser.parse(CUKE_INDEX)))
    assert stale == [
        "https://cucumber.ghost.io/sitemap-posts.xml",
        "https://cucumber.ghost.io/sitemap-tags.xml",
    ]


def test_malformed_cms_lastmod_is_fatal():
    canonical = index_view([("https://cucumber.io/a", "2024-01-01")])
    cms = index_view([("https://cucumber.ghost.io/a", "not-a-date")])
    with pytest.raises(ValueError):
        find_children_to_update(cms, canonical)


def test_pages_map_equal_after_removing_synthetic_entries():
    ours = ChildMapView(parser.parse(CUKE_PAGES))
    assert len(remove_synthetic_entries(ours.entries, CANONICAL_HOST)) == 2
    assert pages_map_needs_update(ours, ChildMapView(parser.parse(PAGES_HOST)), CANONICAL_HOST) is False


def test_pages_map_drift_is_flagged():
    ours = ChildMapView(parser.parse(CUKE_PAGES))
    theirs = ChildMapView(parser.parse(PAGES_HOST_CHANGED))
    assert pages_map_needs_update(ours, theirs, CANONICAL_HOST) is True


def test_pages_map_extra_page_is_flagged():
    theirs = PAGES_HOST.replace(
        "</urlset>",
        "<url><loc>https://cucumber-website.squarespace.com/new</loc><lastmod>2024-03-05</lastmod></url></urlset>",
    )
    ours = ChildMapView(parser.parse(CUKE_PAGES))
    assert pages_map_needs_update(ours, ChildMapView(parser.parse(theirs)), CANONICAL_HOST) is True


# =============================================================================
# 4. SANITIZING
# =============================================================================

def test_domain_rewrite():
    assert sanitize("https://cucumber.ghost.io/blog/foo") == "https://cucumber.io/blog/foo"
    assert sanitize("https://cucumber-website.squarespace.com/about") == "https://cucumber.io/about"


@pytest.mark.parametrize("host", ["cucumber.io", "cucumber.ghost.io"])
def test_stylesheet_instruction_removed_with_whitespace(host):
    body = f'<?xml version="1.0"?><?xml-stylesheet type="text/xsl" href="//{host}/sitemap.xsl"?>\n    <urlset/>'
    assert sanitize(body) == '<?xml version="1.0"?><urlset/>'


@pytest.mark.parametrize("text", [
    CMS_INDEX,
    '<loc>https://cucumber.ghost.io/blog/x</loc>',
    "a.gh.ghostost b",
    "cucumber-website.squarespace.com.ghost",
    '<?xml-stylesheet type="text/xsl" href="//cucumber.gh.ghostost.io/sitemap.xsl"?>\n  x',
    "",
])
def test_sanitize_is_idempotent(text):
    once = sanitize(text)
    assert sanitize(once) == once
    assert ".ghost" not in once


def test_sanitize_rss_table():
    text = "https://cucumber.ghost.io/blog/a https://cucumber.ghost.io/content/b.png https://cucumber.ghost.io/"
    assert sanitize_rss(text) == "https://cucumber.io/blog/a https://cucumber.io/content/b.png https://cucumber.io/"
    assert sanitize_rss(sanitize_rss(text)) == sanitize_rss(text)


def test_sanitize_children_keeps_locations():
    children = [ChildMap("https://cucumber.ghost.io/sitemap-posts.xml", "<loc>https://cucumber.ghost.io/x</loc>")]
    assert sanitize_children(children) == [
        ChildMap("https://cucumber.ghost.io/sitemap-posts.xml", "<loc>https://cucumber.io/x</loc>"),
    ]


# =============================================================================
# 5. PAGE AUGMENTATION
# =============================================================================

def test_synthetic_entries_precede_first_url():
    body = sanitize(PAGES_HOST)
    updated = pages_map_update(body, date(2024, 3, 5), CANONICAL_HOST)
    entries = ChildMapView(parser.parse(updated)).entries

    assert [e.location for e in entries] == [
        "https://cucumber.io/blog",
        "https://cucumber.io/docs",
        "https://cucumber.io/",
        "https://cucumber.io/about",
    ]
    for entry in entries[:2]:
        assert entry.last_modified == "2024-03-05"
        assert entry.change_frequency == "weekly"
        assert entry.priority == "0.75"
    assert "ns0:" not in updated


def test_augmented_map_matches_pages_host_after_stripping():
    updated = pages_map_update(sanitize(PAGES_HOST), date(2024, 3, 5), CANONICAL_HOST)
    ours = ChildMapView(parser.parse(updated))
    assert pages_map_needs_update(ours, ChildMapView(parser.parse(PAGES_HOST)), CANONICAL_HOST) is False


def test_empty_urlset_gets_entries_appended():
    updated = pages_map_update(f'<urlset xmlns="{SM}"/>', date(2024, 3, 5), CANONICAL_HOST)
    assert len(ChildMapView(parser.parse(updated)).entries) == 2


def test_only_pages_map_is_augmented():
    posts = ChildMap("https://cucumber.ghost.io/sitemap-posts.xml", "<urlset/>")
    pages = ChildMap(PAGES_HOST_URL, sanitize(PAGES_HOST))
    result = update_pages_map([posts, pages], date(2024, 3, 5), CANONICAL_HOST, PAGES_HOST_URL)
    assert result[0] is posts
    assert "https://cucumber.io/blog" in result[1].body
    assert is_pages_map(PAGES_HOST_URL, PAGES_HOST_URL)
    assert not is_pages_map(posts.location, PAGES_HOST_URL)


# =============================================================================
# 6. PARENT MERGE
# =============================================================================

RUN_AT = datetime(2024, 3, 5, 10, 11, 12, 345678, tzinfo=timezone.utc)


def test_run_timestamp_has_milliseconds():
    assert format_run_timestamp(RUN_AT) == "2024-03-05T10:11:12.345Z"


def test_merge_updates_matches_and_appends_new_in_order():
    parent = parser.parse(CUKE_INDEX)
    merged, report = update_parent(
        parent, ["/sitemap-posts.xml", "/sitemap-new-a.xml", "/sitemap-new-b.xml"], RUN_AT, CANONICAL_HOST)
    view = SitemapIndexView(merged)

    assert view.paths == [
        "/sitemap-pages.xml", "/sitemap-posts.xml", "/sitemap-authors.xml",
        "/sitemap-new-a.xml", "/sitemap-new-b.xml",
    ]
    by_path = {e.path: e for e in view.entries}
    assert by_path["/sitemap-posts.xml"].last_modified == "2024-03-05T10:11:12.345Z"
    assert by_path["/sitemap-new-b.xml"].location == "https://cucumber.io/sitemap-new-b.xml"
    assert report.updated_paths == ("/sitemap-posts.xml",)
    assert report.added_paths == ("/sitemap-new-a.xml", "/sitemap-new-b.xml")


def test_merge_leaves_other_entries_and_input_untouched():
    parent = parser.parse(CUKE_INDEX)
    before = [etree.tostring(el) for el in parent.getroot()]
    merged, _ = update_parent(parent, ["/sitemap-posts.xml"], RUN_AT, CANONICAL_HOST)

    # 6.1 input tree is not modified
    assert [etree.tostring(el) for el in parent.getroot()] == before
    # 6.2 unrelated entries are byte-identical
    after = [etree.tostring(el) for el in merged.getroot()]
    assert after[0] == before[0]
    assert after[2] == before[2]
    assert after[1] != before[1]


def test_merge_is_complete_without_duplicates():
    parent = parser.parse(CUKE_INDEX)
    refreshed = ["/sitemap-tags.xml", "/sitemap-pages.xml", "/sitemap-tags.xml"]
    merged, _ = update_parent(parent, refreshed, RUN_AT, CANONICAL_HOST)
    paths = SitemapIndexView(merged).paths
    assert len(paths) == len(set(paths))
    assert set(paths) == set(SitemapIndexView(parent).paths) | set(refreshed)


def test_merge_into_empty_index():
    merged, report = update_parent(parser.parse(f'<sitemapindex xmlns="{SM}"/>'), ["/a.xml"], RUN_AT, CANONICAL_HOST)
    assert SitemapIndexView(merged).entries == (IndexEntry("https://cucumber.io/a.xml", "2024-03-05T10:11:12.345Z"),)
    assert report.added_paths == ("/a.xml",)


def test_merge_creates_missing_lastmod():
    parent = parser.parse(f'<sitemapindex xmlns="{SM}"><sitemap><loc>https://cucumber.io/a.xml</loc></sitemap></sitemapindex>')
    merged, _ = update_parent(parent, ["/a.xml"], RUN_AT, CANONICAL_HOST)
    assert SitemapIndexView(merged).entries[0].last_modified == "2024-03-05T10:11:12.345Z"


# =============================================================================
# 7. RSS
# =============================================================================

def test_rss_gate():
    older = datetime(2024, 3, 1, tzinfo=timezone.utc)
    newer = datetime(2024, 3, 2, tzinfo=timezone.utc)
    assert rss_needs_update(newer, older) is True
    assert rss_needs_update(older, newer) is False
    assert rss_needs_update(newer, newer) is False
    # 7.1 a missing header counts as the epoch
    assert rss_needs_update(newer, None) is True
    assert rss_needs_update(None, None) is False


def test_generator_annotated():
    view = RssFeedView(parser.parse(update_generator(CMS_RSS)))
    assert view.generator == "Ghost 5.80 & Cucumber"


def test_feed_without_generator_unchanged():
    body = "<rss><channel><title>x</title></channel></rss>"
    assert RssFeedView(parser.parse(update_generator(body))).generator is None


def test_finalize_rss_rewrites_domains():
    final = finalize_rss(CMS_RSS)
    assert "ghost.io" not in final
    assert "https://cucumber.io/content/images/hello.png" in final
    assert "https://cucumber.io/blog/hello/" in final


def test_finalize_rss_keeps_cdata_descriptions():
    body = (
        "<rss><channel><generator>Ghost 5.80</generator><item>"
        "<description><![CDATA[<p>hi &amp; bye</p>]]></description>"
        "</item></channel></rss>"
    )
    final = finalize_rss(body)
    assert "<![CDATA[<p>hi &amp; bye</p>]]>" in final
    assert "&lt;p&gt;" not in final


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
