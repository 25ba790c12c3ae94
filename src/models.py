"""
Records passed between the pipeline stages.

All records are frozen: a stage that needs a different value builds a new one.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class IndexEntry:
    """One <sitemap> entry of a sitemap index."""
    location: str
    last_modified: Optional[str] = None

    @property
    def path(self) -> str:
        # Join key across indexes: same path on different hosts is the same child
        return urlparse(self.location).path


@dataclass(frozen=True)
class UrlEntry:
    """One <url> entry of a child sitemap."""
    location: str
    last_modified: Optional[str] = None
    change_frequency: Optional[str] = None
    priority: Optional[str] = None

    @property
    def path(self) -> str:
        return urlparse(self.location).path


@dataclass(frozen=True)
class ChildMap:
    """A fetched child sitemap and its (possibly rewritten) body text."""
    location: str
    body: str


@dataclass(frozen=True)
class RssItem:
    title: Optional[str] = None
    link: Optional[str] = None


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single GET. `status_code` is None when no response arrived."""
    url: str
    status_code: Optional[int] = None
    content: str = ""
    last_modified: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and self.status_code < 400


@dataclass(frozen=True)
class MergeReport:
    updated_paths: Tuple[str, ...] = ()
    added_paths: Tuple[str, ...] = ()


@dataclass
class SyncResult:
    """Summary of one sitemap reconciliation run."""
    run_started_at: datetime
    stale_locations: List[str] = field(default_factory=list)
    written_paths: List[str] = field(default_factory=list)
    skipped_locations: List[str] = field(default_factory=list)
    merge: MergeReport = field(default_factory=MergeReport)

    @property
    def changed(self) -> bool:
        return bool(self.written_paths)
