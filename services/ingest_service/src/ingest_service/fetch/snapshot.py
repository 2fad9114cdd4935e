from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import httpx

from poesie_core.errors import SourceError
from poesie_core.hashing import sha256_hex
from ingest_service.settings import settings


@dataclass(frozen=True)
class Snapshot:
    url: str
    fetched_at: datetime
    content_type: str | None
    content: bytes
    sha256: str
    raw_path: Path
    meta_path: Path

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def snapshot_url(url: str, *, client: httpx.Client | None = None) -> Snapshot:
    """
    Fetch raw bytes from `url` and keep an immutable copy under `data/raw/`,
    named by checksum so re-fetching identical content writes nothing new.
    """
    raw_dir = settings.data_dir / "raw"
    raw_dir.mkdir(parents=True, exist_ok=True)

    headers = {"User-Agent": settings.user_agent}
    if client is None:
        with httpx.Client(timeout=settings.request_timeout_s, headers=headers, follow_redirects=True) as own:
            resp = own.get(url)
    else:
        resp = client.get(url, headers=headers)
    resp.raise_for_status()

    content = resp.content
    if len(content) > settings.max_bytes:
        raise SourceError(f"Refusing to store {len(content)} bytes (max_bytes={settings.max_bytes})")

    fetched_at = datetime.utcnow()
    digest = sha256_hex(content)
    raw_path = raw_dir / f"{digest}.html"
    meta_path = raw_dir / f"{digest}.json"

    if not raw_path.exists():
        raw_path.write_bytes(content)
    if not meta_path.exists():
        meta = {
            "url": url,
            "fetched_at": fetched_at.isoformat(),
            "status_code": resp.status_code,
            "content_type": resp.headers.get("content-type"),
            "sha256": digest,
        }
        meta_path.write_text(json.dumps(meta, indent=2) + "\n", encoding="utf-8")

    return Snapshot(
        url=url,
        fetched_at=fetched_at,
        content_type=resp.headers.get("content-type"),
        content=content,
        sha256=digest,
        raw_path=raw_path,
        meta_path=meta_path,
    )
