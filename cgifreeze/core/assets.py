"""
Asset acquisition: download, classify and persist page assets.

Stylesheets are decoded, scanned for url(...) references, rewritten relative
to their own output path and saved; the images they reference are then
acquired in a second pass. Discovery stops there: a stylesheet found inside
a stylesheet is fetched as plain bytes and never scanned, which keeps
cyclic or adversarial CSS from expanding the crawl.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Set, Tuple

from cgifreeze.core.exceptions import FetchError, StorageError
from cgifreeze.core.path_resolver import PathResolver
from cgifreeze.core.references import AssetRef, ReferenceKind
from cgifreeze.core.stylesheet import declare_utf8, extract_nested, rewrite_nested
from cgifreeze.utils.encoding import decode
from cgifreeze.utils.file_manager import FileManager
from cgifreeze.utils.relative_path import RelativePathCalculator
from cgifreeze.utils.validators import normalize_url


MAX_NESTING_DEPTH = 1


@dataclass
class AcquisitionReport:
    succeeded: List[str] = field(default_factory=list)             # Output paths
    failed: List[Tuple[str, str]] = field(default_factory=list)    # (url, reason)
    skipped: List[str] = field(default_factory=list)               # URLs already on disk

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def success_rate(self) -> float:
        attempted = len(self.succeeded) + len(self.failed)
        if attempted == 0:
            return 1.0
        return len(self.succeeded) / attempted

    def merge(self, other: 'AcquisitionReport') -> None:
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)
        self.skipped.extend(other.skipped)

    def summary(self) -> str:
        return (
            "Asset acquisition:\n"
            f"  succeeded: {len(self.succeeded)}\n"
            f"  failed:    {len(self.failed)}\n"
            f"  skipped:   {len(self.skipped)}\n"
            f"  total:     {self.total}\n"
            f"  success rate: {self.success_rate * 100:.1f}%"
        )


class AssetAcquirer:
    def __init__(self,
                 fetcher,
                 storage: FileManager,
                 resolver: PathResolver,
                 encoding: str = 'utf-8',
                 calculator: RelativePathCalculator = None):
        self.logger = logging.getLogger(__name__)
        self.fetcher = fetcher
        self.storage = storage
        self.resolver = resolver
        self.encoding = encoding
        self.calculator = calculator or RelativePathCalculator()

    def acquire(self, refs: Iterable[AssetRef]) -> AcquisitionReport:
        """
        Download and persist a batch of assets.

        Each item succeeds, fails or is skipped independently; a failure
        never aborts the batch. Resources referenced from stylesheets are
        fully processed before this returns.
        """
        report = AcquisitionReport()
        seen: Set[str] = set()
        queue: Deque[Tuple[AssetRef, int]] = deque()
        self._enqueue(queue, seen, refs, depth=0)

        self.logger.info(f"Acquiring {len(queue)} assets")
        while queue:
            ref, depth = queue.popleft()
            nested = self._acquire_one(ref, report)
            if nested and depth < MAX_NESTING_DEPTH:
                nested_refs = [AssetRef(url=u, kind=ReferenceKind.IMAGE) for u in nested]
                added = self._enqueue(queue, seen, nested_refs, depth=depth + 1)
                if added:
                    self.logger.debug(f"Queued {added} resources referenced by {ref.url}")

        self.logger.info(
            f"Assets done: succeeded={len(report.succeeded)}, failed={len(report.failed)}, "
            f"skipped={len(report.skipped)}"
        )
        return report

    def _enqueue(self, queue, seen: Set[str], refs: Iterable[AssetRef], depth: int) -> int:
        added = 0
        for ref in refs:
            url = normalize_url(ref.url)
            if url in seen:
                continue
            seen.add(url)
            if url != ref.url:
                ref = AssetRef(url=url, kind=ref.kind, handle=ref.handle, tag=ref.tag,
                               attribute=ref.attribute, candidate=ref.candidate)
            queue.append((ref, depth))
            added += 1
        return added

    def _acquire_one(self, ref: AssetRef, report: AcquisitionReport) -> List[str]:
        """
        Process one asset and record its outcome.

        Returns:
            Absolute URLs referenced by the asset (stylesheets only)
        """
        if ref.kind is ReferenceKind.PAGE:
            raise ValueError(f"Pages are not acquired as assets: {ref.url}")

        path = self.resolver.resolve(ref.url)
        if path is None:
            self.logger.debug(f"Unmappable asset: {ref.url}")
            report.failed.append((ref.url, 'unmappable'))
            return []

        if self.storage.exists(path):
            self.logger.debug(f"Skipping existing asset: {path}")
            report.skipped.append(ref.url)
            return []

        try:
            result = self.fetcher.fetch(ref.url)
        except FetchError as e:
            self.logger.warning(f"Failed to download asset: {ref.url} ({e})")
            report.failed.append((ref.url, str(e)))
            return []

        nested: List[str] = []
        try:
            nested = self._persist(ref, path, result.body)
        except StorageError as e:
            self.logger.error(f"Failed to save asset {ref.url} -> {path}: {e}")
            report.failed.append((ref.url, str(e)))
            return []

        report.succeeded.append(path)
        return nested

    def _persist(self, ref: AssetRef, path: str, body: bytes) -> List[str]:
        kind = ref.kind
        if kind is ReferenceKind.STYLESHEET:
            css = decode(body, self.encoding)
            nested = extract_nested(css, ref.url)
            css = rewrite_nested(css, ref.url, path, self.resolver, self.calculator)
            self.storage.save(path, declare_utf8(css))
            return nested
        if kind is ReferenceKind.SCRIPT:
            self.storage.save(path, decode(body, self.encoding))
            return []
        if kind in (ReferenceKind.IMAGE, ReferenceKind.INLINE_STYLESHEET_RESOURCE):
            self.storage.save_binary(path, body)
            return []
        raise ValueError(f"Unhandled reference kind: {kind}")
