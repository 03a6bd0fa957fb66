"""
Run manifest: an append-only JSON Lines file with one record per page
outcome, kept beside the archive tree for post-run inspection.
"""

import json
import os
import time
from dataclasses import dataclass, asdict, field
from typing import Optional


MANIFEST_SUFFIX = ".manifest.jsonl"


@dataclass
class ManifestRecord:
    url: str
    status: str  # completed|skipped|failed
    output_path: Optional[str] = None
    error: Optional[str] = None
    started_at: float = 0.0
    finished_at: float = field(default_factory=time.time)


class Manifest:
    def __init__(self, path: str):
        self.path = path
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    @classmethod
    def for_site(cls, output_dir: str, site_key: str) -> 'Manifest':
        return cls(os.path.join(output_dir, f"{site_key}{MANIFEST_SUFFIX}"))

    def append(self, rec: ManifestRecord) -> None:
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(asdict(rec), ensure_ascii=False) + "\n")
