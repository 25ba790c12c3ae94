"""
1.0 Output Writer Module
Writes regenerated documents to disk and records what each run changed.

Key features:
- Whole-file overwrites, parent directories created on demand
- Child sitemaps land under the sitemap directory at their own URL path
- The pages sitemap always lands at /sitemap-pages.xml
- Monthly run history CSV files to prevent size bloat
"""

import pandas as pd
import os
import logging
from typing import Dict, Iterable, List, Optional, Any
from datetime import datetime, timezone
from urllib.parse import urlparse

from src.models import ChildMap
from src.page_augmenter import is_pages_map
from src.staleness_detector import PAGES_MAP_PATH

logger = logging.getLogger(__name__)

# 1.1 Column name constants for consistency
COL_RUN_AT = "run_at"
COL_RUN_TYPE = "run_type"
COL_PATH = "path"
COL_ACTION = "action"

HISTORY_COLUMNS = [COL_RUN_AT, COL_RUN_TYPE, COL_PATH, COL_ACTION]


class OutputWriter:
    """
    2.0 OutputWriter Class
    Persists published documents and the run history.
    """

    def __init__(self, sitemap_dir: str = "./static/sitemaps", history_dir: str = "output",
                 history_enabled: bool = True):
        """
        2.1 Initialize the writer.

        Args:
            sitemap_dir: Directory child sitemaps are written into
            history_dir: Directory for monthly history CSV files
            history_enabled: Set False to skip run history
        """
        self.sitemap_dir = sitemap_dir
        self.history_dir = history_dir
        self.history_enabled = history_enabled
        logger.info(f"OutputWriter initialized: sitemap_dir={sitemap_dir}, history_dir={history_dir}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OutputWriter":
        output = config.get("output", {})
        return cls(
            sitemap_dir=output.get("sitemap_dir", "./static/sitemaps"),
            history_dir=output.get("history_dir", "output"),
            history_enabled=bool(output.get("history_enabled", True)),
        )

    # =========================================================================
    # 3.0 DOCUMENT OUTPUT
    # =========================================================================

    def write(self, data: str, location: str) -> str:
        """
        3.1 Overwrite `location` with `data`, creating missing directories.

        Errors propagate to the caller.
        """
        directory = os.path.dirname(location)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(location, 'w', encoding='utf-8') as f:
            f.write(data)
        logger.debug(f"Wrote {len(data):,} chars to {location}")
        return location

    def child_path(self, child: ChildMap, pages_host_url: str) -> str:
        """
        3.2 Published URL path for a child sitemap.
        """
        if is_pages_map(child.location, pages_host_url):
            return PAGES_MAP_PATH
        return urlparse(child.location).path

    def write_children(self, children: Iterable[ChildMap], pages_host_url: str) -> List[str]:
        """
        3.3 Write each child sitemap; returns the written paths in order.
        """
        written = []
        for child in children:
            path = self.child_path(child, pages_host_url)
            self.write(child.body, os.path.join(self.sitemap_dir, path.lstrip('/')))
            written.append(path)
        logger.info(f"wrote children maps: {written}")
        return written

    # =========================================================================
    # 4.0 RUN HISTORY
    # =========================================================================

    def _get_monthly_history_path(self, run_ts: datetime) -> str:
        """
        4.1 Get the path for the monthly history file.
        """
        month_str = run_ts.strftime("%Y-%m")
        return os.path.join(self.history_dir, f"sync_history_{month_str}.csv")

    def save_run_history(self, run_type: str, actions: Dict[str, Iterable[str]],
                         run_started_at: Optional[datetime] = None) -> Optional[str]:
        """
        4.2 Append one row per (action, path) to the monthly history CSV.

        History is auxiliary: failures are logged, never raised.

        Args:
            run_type: 'sitemaps' or 'rss'
            actions: Mapping of action name (e.g. 'written', 'added') to paths
            run_started_at: Run timestamp (default: now, UTC)

        Returns:
            Path of the history file, or None if nothing was recorded
        """
        if not self.history_enabled:
            return None

        run_ts = run_started_at or datetime.now(timezone.utc)
        rows = [
            {COL_RUN_AT: run_ts.isoformat(), COL_RUN_TYPE: run_type, COL_PATH: path, COL_ACTION: action}
            for action, paths in actions.items()
            for path in paths
        ]
        if not rows:
            return None

        history_path = self._get_monthly_history_path(run_ts)
        try:
            df = pd.DataFrame(rows).reindex(columns=HISTORY_COLUMNS)
            os.makedirs(self.history_dir, exist_ok=True)

            if os.path.exists(history_path):
                df.to_csv(history_path, mode='a', header=False, index=False)
                logger.info(f"Appended {len(df):,} history rows to {history_path}")
            else:
                df.to_csv(history_path, mode='w', header=True, index=False)
                logger.info(f"Created run history with {len(df):,} rows at {history_path}")
        except (OSError, ValueError) as e:
            logger.error(f"Error saving run history: {e}")
            return None

        return history_path

