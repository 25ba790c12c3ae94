"""
1.0 Main Orchestrator Module
Coordinates the sitemap and RSS sync runs.

Key features:
- Detects stale child sitemaps by comparing the CMS index with ours
- Re-checks the pages sitemap against the pages host
- Sanitizes and writes refreshed children, then merges them into our index
- Regenerates the RSS feed only when the CMS feed is newer

Usage:
    python -m src.main sitemaps
    python -m src.main rss
    python -m src.main all --config config.json
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

# Project-specific imports
from src.config import load_config, CONFIG_FILE_PATH
from src.models import ChildMap, SyncResult
from src.output_writer import OutputWriter
from src.page_augmenter import update_pages_map
from src.parent_merger import update_parent
from src.rss_finalizer import finalize_rss, rss_needs_update
from src.sanitizer import sanitize_children
from src.sitemap_fetcher import SitemapFetcher, FetchError
from src.sitemap_parser import SitemapParser, SitemapIndexView, ChildMapView, DocumentParseError
from src.staleness_detector import find_children_to_update, pages_map_needs_update

logger = logging.getLogger(__name__)


def setup_logging(log_file: str = "sync_process.log") -> None:
    """
    1.1 Setup logging for command-line runs.
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def load_children(fetcher: SitemapFetcher, locations: List[str],
                  log: logging.Logger = logger) -> List[ChildMap]:
    """
    2.0 Fetch each stale child; failures are logged and left for the next run.
    """
    children = []
    for location in locations:
        result = fetcher.fetch(location)
        if not result.ok:
            detail = result.error or f"status={result.status_code}"
            log.warning(f"Skipping child {location}: {detail}")
            continue
        children.append(ChildMap(location=location, body=result.content))
    return children


def generate_sitemaps(
    config: Dict[str, Any],
    fetcher: SitemapFetcher,
    writer: OutputWriter,
    run_started_at: Optional[datetime] = None,
    parser: Optional[SitemapParser] = None,
    log: logging.Logger = logger,
) -> SyncResult:
    """
    3.0 Bring our sitemaps up to date with the CMS and the pages host.

    Flow:
    1. Fetch the CMS index, our index, our pages map and the pages host map
    2. Collect stale children (plus the pages map if it drifted)
    3. Fetch, sanitize and augment the stale children, then write them
    4. Stamp/append the written children in our index and write it

    Raises:
        FetchError: if one of the four indexes cannot be fetched
        OSError: if a local index cannot be read or an output cannot be written
        DocumentParseError, ValueError: on malformed XML or dates
    """
    run_started_at = run_started_at or datetime.now(timezone.utc)
    parser = parser or SitemapParser()
    sources = config["sources"]
    canonical_host = config["canonical_host"]
    pages_host_url = sources["pages_host_sitemap"]

    result = SyncResult(run_started_at=run_started_at)

    # 3.1 Setup data for current sitemaps
    cms_parent = SitemapIndexView(parser.parse(
        fetcher.fetch_document(sources["cms_sitemap_index"]), source=sources["cms_sitemap_index"]))
    cuke_parent_tree = parser.parse(
        fetcher.load_document(sources["canonical_sitemap_index"]), source=sources["canonical_sitemap_index"])
    cuke_pages = ChildMapView(parser.parse(
        fetcher.load_document(sources["canonical_pages_map"]), source=sources["canonical_pages_map"]))
    pages_host = ChildMapView(parser.parse(
        fetcher.fetch_document(pages_host_url), source=pages_host_url))

    # 3.2 Gather locations of child maps that need to be regenerated
    children_to_update = find_children_to_update(cms_parent, SitemapIndexView(cuke_parent_tree))
    if pages_map_needs_update(cuke_pages, pages_host, canonical_host, log=log):
        children_to_update.append(pages_host_url)
    result.stale_locations = list(children_to_update)

    if not children_to_update:
        log.info("nothing to update, returning early")
        return result

    # 3.3 Generate sanitized versions of each child
    children_data = load_children(fetcher, children_to_update, log=log)
    fetched = {child.location for child in children_data}
    result.skipped_locations = [loc for loc in children_to_update if loc not in fetched]

    sanitized_children = sanitize_children(children_data)
    children_to_write = update_pages_map(
        sanitized_children, run_started_at.date(), canonical_host, pages_host_url, parser=parser)
    result.written_paths = writer.write_children(children_to_write, pages_host_url)

    # 3.4 Update our parent map's lastmod dates for the children we wrote
    if result.written_paths:
        new_parent, result.merge = update_parent(
            cuke_parent_tree, result.written_paths, run_started_at, canonical_host)
        writer.write(parser.serialize(new_parent), config["output"]["parent_sitemap"])
    else:
        log.warning("No stale children could be fetched; parent index left as is")

    writer.save_run_history(
        "sitemaps",
        {
            "written": result.written_paths,
            "lastmod_updated": result.merge.updated_paths,
            "added": result.merge.added_paths,
            "skipped": [urlparse(loc).path for loc in result.skipped_locations],
        },
        run_started_at=run_started_at,
    )
    return result


def generate_rss(
    config: Dict[str, Any],
    fetcher: SitemapFetcher,
    writer: OutputWriter,
    run_started_at: Optional[datetime] = None,
    parser: Optional[SitemapParser] = None,
    log: logging.Logger = logger,
) -> Optional[str]:
    """
    4.0 Regenerate our RSS feed from the CMS feed when the CMS one is newer.

    Returns:
        The written file path, or None when generation was skipped
    """
    sources = config["sources"]
    external_url = sources["cms_rss_feed"]
    cuke_url = sources["canonical_rss_feed"]

    if not rss_needs_update(fetcher.fetch_last_modified(external_url), fetcher.fetch_last_modified(cuke_url)):
        log.info("external rss not newer, skipping generation")
        return None
    log.info("generating new rss file")

    final_rss = finalize_rss(fetcher.fetch_document(external_url), parser=parser)
    rss_file = writer.write(final_rss, config["output"]["rss_file"])

    writer.save_run_history("rss", {"written": [rss_file]}, run_started_at=run_started_at)
    return rss_file


def main(argv: Optional[List[str]] = None) -> int:
    """
    5.0 Command-line entry point.
    """
    arg_parser = argparse.ArgumentParser(description="Sync cucumber.io sitemaps and RSS from the CMS")
    arg_parser.add_argument("task", choices=["sitemaps", "rss", "all"], nargs="?", default="all",
                            help="What to regenerate (default: all)")
    arg_parser.add_argument("--config", default=CONFIG_FILE_PATH, help="Path to config.json")
    args = arg_parser.parse_args(argv)

    setup_logging()

    run_started_at = datetime.now(timezone.utc)
    logger.info("=" * 60)
    logger.info(f"Starting {args.task} sync")
    logger.info(f"Run timestamp: {run_started_at.isoformat()}")
    logger.info("=" * 60)

    # 5.1 Load configuration
    config = load_config(args.config)
    if not config:
        logger.error("Failed to load configuration. Exiting.")
        return 1

    # 5.2 Initialize components
    fetcher = SitemapFetcher(config=config)
    writer = OutputWriter.from_config(config)

    try:
        if args.task in ("sitemaps", "all"):
            result = generate_sitemaps(config, fetcher, writer, run_started_at=run_started_at)
            logger.info(
                f"Sitemap sync complete: {len(result.written_paths)} written, "
                f"{len(result.skipped_locations)} skipped"
            )
        if args.task in ("rss", "all"):
            generate_rss(config, fetcher, writer, run_started_at=run_started_at)
    except (FetchError, DocumentParseError, ValueError, OSError) as e:
        logger.error(f"Sync FAILED: {type(e).__name__}: {e}")
        logger.exception("Full traceback:")
        return 1

    logger.info("Sync finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
