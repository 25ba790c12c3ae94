"""
Cucumber Sitemap Sync - Source Package

Modules:
- config: Configuration loading and validation
- models: Entry and result records shared across the pipeline
- sitemap_fetcher: HTTP fetching of sitemaps, feeds and Last-Modified headers
- sitemap_parser: Strict XML parsing, serialization and typed document views
- sanitizer: Domain rewriting for child sitemaps and the RSS feed
- staleness_detector: Decides which child sitemaps need a refresh
- page_augmenter: Injects the blog/docs entries into the pages sitemap
- parent_merger: Merges refreshed children back into the parent index
- rss_finalizer: Freshness gate and generator annotation for the RSS feed
- output_writer: File output and monthly run history
"""

__version__ = "1.0.0"
