"""
cgifreeze orchestrator: runs the end-to-end archive of one site.

Pages are processed serially: fetch, decode, parse, acquire assets, rewrite,
save. A failure on one page is recorded and the run moves on.
"""

from __future__ import annotations

import os
import time
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .assets import AcquisitionReport, AssetAcquirer
from .exceptions import ArchiverError, UnmappablePageError
from .fetcher import Fetcher
from .html_parser import HTMLParser
from .link_rewriter import LinkRewriter
from .logger import ErrorTracker
from .page_planner import PagePlanner, PlannedPage
from .path_resolver import PathResolver
from .references import AssetRef, ParseResult
from .registry import PathRegistry
from cgifreeze.utils.config import SiteConfig
from cgifreeze.utils.encoding import decode
from cgifreeze.utils.file_manager import FileManager
from cgifreeze.utils.manifest import Manifest, ManifestRecord
from cgifreeze.utils.rate_limiter import RateLimiter
from cgifreeze.utils.relative_path import RelativePathCalculator


ProgressCallback = Callable[[Dict[str, object]], None]


@dataclass
class RunOptions:
    village_ids: Optional[Sequence[str]] = None
    user_ids: Optional[Sequence[str]] = None
    auto_discover: bool = False
    users_only: bool = False
    villages_only: bool = False
    static_only: bool = False


@dataclass
class ArchiveResult:
    pages_total: int = 0
    pages_succeeded: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    assets: AcquisitionReport = field(default_factory=AcquisitionReport)
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (url, reason)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def duration(self) -> float:
        return (self.finished_at or time.time()) - self.started_at

    @property
    def success(self) -> bool:
        return self.pages_failed == 0

    def summary(self) -> str:
        lines = [
            "Archive complete",
            "",
            "Pages:",
            f"  total:     {self.pages_total}",
            f"  succeeded: {self.pages_succeeded}",
            f"  failed:    {self.pages_failed}",
            f"  skipped:   {self.pages_skipped}",
            "",
            "Assets:",
            f"  total:     {self.assets.total}",
            f"  succeeded: {len(self.assets.succeeded)}",
            f"  failed:    {len(self.assets.failed)}",
            f"  skipped:   {len(self.assets.skipped)}",
            "",
            f"Duration: {self.duration:.1f}s",
        ]
        if self.failures:
            lines.append("")
            lines.append("Failed pages:")
            lines.extend(f"  {url}: {reason}" for url, reason in self.failures)
        return "\n".join(lines)


class ArchiveController:
    def __init__(self,
                 site: SiteConfig,
                 output_dir: str = "archive",
                 fetcher=None,
                 logger: Optional[logging.Logger] = None,
                 error_tracker: Optional[ErrorTracker] = None):
        self.site = site
        self.output_dir = output_dir
        self.logger = logger or logging.getLogger(__name__)
        self.errors = error_tracker or ErrorTracker(self.logger)

        self.rate_limiter = RateLimiter(wait_time=site.effective_wait_time, enabled=not site.is_localhost)
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(site.base_url, rate_limiter=self.rate_limiter)

        self.resolver = PathResolver(site.base_url, site.path_mapping,
                                     asset_root=str(site.assets.get('root') or 'assets'),
                                     encoding=site.encoding)
        self.calculator = RelativePathCalculator()
        self.registry = PathRegistry()
        self.parser = HTMLParser()
        self.files = FileManager(os.path.join(output_dir, site.key))
        self.acquirer = AssetAcquirer(self.fetcher, self.files, self.resolver,
                                      encoding=site.encoding, calculator=self.calculator)
        rewrite = site.link_rewrite
        self.rewriter = LinkRewriter(self.resolver, self.registry, self.calculator,
                                     fallback=str(rewrite.get('fallback', '#')),
                                     exclude_domains=rewrite.get('exclude_domains') or (),
                                     enabled=bool(rewrite.get('enabled', True)))
        self.planner = PagePlanner(site, self.resolver, fetcher=self.fetcher, parser=self.parser)
        self.manifest = Manifest.for_site(output_dir, site.key)
        self._stop_event = threading.Event()

    def stop(self):
        self._stop_event.set()

    def close(self):
        if self._owns_fetcher:
            self.fetcher.close()

    def run(self, options: Optional[RunOptions] = None,
            progress: Optional[ProgressCallback] = None) -> ArchiveResult:
        """Plan the pages and archive them one by one."""
        options = options or RunOptions()
        result = ArchiveResult()

        pages = self.planner.plan(
            village_ids=options.village_ids,
            user_ids=options.user_ids,
            auto_discover=options.auto_discover,
            users_only=options.users_only,
            villages_only=options.villages_only,
            static_only=options.static_only,
        )
        if progress:
            progress({"type": "plan", "total": len(pages)})
        if not pages:
            self.logger.warning("Nothing to archive")
            result.finished_at = time.time()
            return result

        # Registry holds every planned page before the first rewrite
        for page in pages:
            if page.output_path and not self.registry.add(page.output_path):
                self.errors.log_warning(f"Output path collision, first page wins: {page.output_path}",
                                        context="registry", url=page.url)

        total = len(pages)
        for idx, page in enumerate(pages, 1):
            if self._stop_event.is_set():
                self.logger.info("Stop requested, ending run")
                break
            result.pages_total += 1
            started = time.time()
            if progress:
                progress({"type": "page", "index": idx, "total": total, "stage": "processing", "url": page.url})

            try:
                status = self.process_page(page, result)
            except ArchiverError as e:
                self.errors.log_error(e, context=f"page {page.group}", url=page.url)
                result.pages_failed += 1
                result.failures.append((page.url, str(e)))
                self.manifest.append(ManifestRecord(url=page.url, status='failed', output_path=page.output_path,
                                                    error=str(e), started_at=started))
                if progress:
                    progress({"type": "page", "index": idx, "total": total, "stage": "failed", "url": page.url})
                continue

            if status == 'skipped':
                result.pages_skipped += 1
            else:
                result.pages_succeeded += 1
            self.manifest.append(ManifestRecord(url=page.url, status=status, output_path=page.output_path,
                                                started_at=started))
            if progress:
                progress({"type": "page", "index": idx, "total": total, "stage": status, "url": page.url})

        result.finished_at = time.time()
        self.logger.info(
            f"Run finished: {result.pages_succeeded} succeeded, {result.pages_failed} failed, "
            f"{result.pages_skipped} skipped in {result.duration:.1f}s"
        )
        self.logger.debug(f"Relative path cache: {self.calculator.stats()}")
        return result

    def process_page(self, page: PlannedPage, result: ArchiveResult) -> str:
        """
        Archive one page.

        Returns:
            'completed', or 'skipped' when the output file already exists

        Raises:
            ArchiverError: the page is not saved
        """
        if page.output_path is None:
            raise UnmappablePageError("unmappable", url=page.url)

        if self.files.exists(page.output_path):
            self.logger.info(f"Skipping existing page: {page.output_path}")
            return 'skipped'

        fetched = self.fetcher.fetch(page.url)
        html = decode(fetched.body, self.site.encoding)
        parsed = self.parser.parse(html, fetched.url)

        if self.site.assets.get('download', True):
            refs = self.select_assets(parsed)
            if refs:
                report = self.acquirer.acquire(refs)
                result.assets.merge(report)

        final_html = self.rewriter.rewrite(parsed, page.output_path)
        self.files.save(page.output_path, final_html)
        self.logger.info(f"Saved {page.url} -> {page.output_path}")
        return 'completed'

    def select_assets(self, parsed: ParseResult) -> List[AssetRef]:
        """
        Internal assets of the configured types, inline-style resources
        included. References that resolve to a planned page are left to the
        page pass.
        """
        types = set(self.site.asset_types)
        refs = []
        for ref in parsed.asset_refs():
            if ref.kind.config_type not in types or self.rewriter.is_external(ref.url):
                continue
            if self.resolver.resolve(ref.url) in self.registry:
                self.logger.debug(f"Not an asset, {ref.url} is a planned page")
                continue
            refs.append(ref)
        return refs
