"""Catalogue loading with a last-known-good cache.

Fallback chain:
    1. Live fetch of the configured source (http(s) URL or local path)
    2. Last-known-good cache written after every successful load
    3. ``need_import``: the caller must supply a document via import_file()

Every outcome is reported as a CatalogResult; only import_file() raises.
"""

import json
import logging
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import httpx

from speakdrill.lib.config import CatalogConfig, get_catalog_config
from speakdrill.lib.exceptions import CatalogError
from speakdrill.models.item import PracticeItem

logger = logging.getLogger(__name__)

# Keys of the pre-normalization spreadsheet export; their presence marks a stale cache
LEGACY_KEYS = ("Date", "Time")

AUDIO_FOLDER = "Audio"
PICTURE_FOLDER = "Pic"


class CatalogStatus(str, Enum):
    OK = "ok"
    NEED_IMPORT = "need_import"


class CatalogSource(str, Enum):
    FETCH = "fetch"
    CACHE = "cache"
    IMPORT = "import"


@dataclass
class CatalogResult:
    """
    Outcome of a catalogue load.

    Attributes:
        status: OK, or NEED_IMPORT when every source failed
        items: Parsed items (empty unless status is OK)
        source: Where the items came from
        version: Document version string, if present
        error: Last failure message, if any source failed
    """

    status: CatalogStatus
    items: list[PracticeItem] = field(default_factory=list)
    source: Optional[CatalogSource] = None
    version: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == CatalogStatus.OK


def extract_records(document: Any) -> tuple[list[dict], Optional[str]]:
    """
    Pull the record list and version out of a catalogue document.

    Accepts ``{"version": ..., "items": [...]}`` or a bare list.

    Raises:
        CatalogError: If the document has no record list
    """
    if isinstance(document, list):
        records, version = document, None
    elif isinstance(document, dict) and isinstance(document.get("items"), list):
        records, version = document["items"], document.get("version")
    else:
        raise CatalogError("Catalogue has no items array")

    if not all(isinstance(record, dict) for record in records):
        raise CatalogError("Catalogue items must be objects")
    return records, str(version) if version is not None else None


def parse_items(records: list[dict]) -> list[PracticeItem]:
    """
    Build items from normalized records.

    Raises:
        CatalogError: If a record has no id or ids collide
    """
    items: list[PracticeItem] = []
    seen: set[str] = set()
    for position, record in enumerate(records, 1):
        try:
            item = PracticeItem.from_record(record)
        except ValueError as e:
            raise CatalogError(f"Invalid item #{position}: {e}") from e
        if item.id in seen:
            raise CatalogError(f"Duplicate item id: {item.id}")
        seen.add(item.id)
        items.append(item)
    return items


def is_cache_invalid(records: Any) -> bool:
    """
    Check whether cached rows must be discarded.

    A cache is invalid when it is empty, holds legacy spreadsheet rows, or
    any row lacks a finite positive ``timeSec``.
    """
    if not isinstance(records, list) or not records:
        return True
    for row in records:
        if not isinstance(row, dict):
            return True
        if any(key in row for key in LEGACY_KEYS):
            return True
        value = row.get("timeSec")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return True
        if not math.isfinite(value) or value <= 0:
            return True
    return False


def resolve_media_path(value: Any, folder: str, base: Optional[str] = None) -> Optional[str]:
    """
    Resolve a media reference from the catalogue.

    URLs and absolute or explicitly relative paths pass through; bare names
    are placed in ``folder`` under ``base`` (the catalogue's location).

    Returns:
        The resolved reference, or None for an empty value
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    if raw.lower().startswith(("http://", "https://")):
        return raw
    if raw.startswith("/") or raw.startswith("./"):
        return raw
    relative = raw if raw.startswith(f"{folder}/") else f"{folder}/{raw}"
    if base is None:
        return f"./{relative}"
    if base.lower().startswith(("http://", "https://")):
        return f"{base.rstrip('/')}/{relative}"
    return str(Path(base) / relative)


class CatalogLoader:
    """
    Load the exercise catalogue through the fetch → cache → import chain.

    Example:
        loader = CatalogLoader()
        result = loader.load()
        if not result.ok:
            result = loader.import_file(Path("TestData.json"))
    """

    def __init__(self, config: Optional[CatalogConfig] = None):
        self.config = config or get_catalog_config()

    @property
    def media_base(self) -> str:
        """Location media references are resolved against."""
        source = self.config.catalog_source
        if self.config.is_remote():
            return source.rsplit("/", 1)[0]
        return str(Path(source).parent)

    def load(self) -> CatalogResult:
        """Run the fallback chain. Never raises."""
        try:
            records, version = self._fetch()
            items = parse_items(records)
        except CatalogError as e:
            logger.warning(f"Catalogue fetch failed: {e.message}")
            error = e.message
        else:
            self._save_cache(records, version)
            logger.info(f"Loaded {len(items)} items from {self.config.catalog_source}")
            return CatalogResult(
                CatalogStatus.OK, self._with_media(items), CatalogSource.FETCH, version
            )

        cached = self._load_cache()
        if cached is not None:
            records, version = cached
            try:
                items = parse_items(records)
            except CatalogError as e:
                logger.warning(f"Discarding unreadable cache: {e.message}")
                self.clear_cache()
            else:
                logger.info(f"Loaded {len(items)} items from cache")
                return CatalogResult(
                    CatalogStatus.OK, self._with_media(items), CatalogSource.CACHE, version, error
                )

        return CatalogResult(CatalogStatus.NEED_IMPORT, error=error)

    def import_file(self, path: Path) -> CatalogResult:
        """
        Load a user-supplied document and make it the cached catalogue.

        Raises:
            CatalogError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Failed to read {path.name}: {e}", path=str(path)) from e

        records, version = extract_records(document)
        items = parse_items(records)
        self._save_cache(records, version)
        logger.info(f"Imported {len(items)} items from {path}")
        return CatalogResult(CatalogStatus.OK, self._with_media(items), CatalogSource.IMPORT, version)

    def clear_cache(self) -> None:
        """Delete the cache file if present."""
        self.config.cache_path.unlink(missing_ok=True)

    # ─────────────── internals ─────────────────

    def _fetch(self) -> tuple[list[dict], Optional[str]]:
        source = self.config.catalog_source
        if self.config.is_remote():
            document = self._fetch_remote(source)
        else:
            path = Path(source)
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise CatalogError(f"Failed to read {path}: {e}", path=source) from e
        return extract_records(document)

    def _fetch_remote(self, url: str) -> Any:
        timeout = self.config.fetch_timeout_seconds
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                response = client.get(url, headers={"Cache-Control": "no-store"})
                if response.status_code != 200:
                    raise CatalogError(f"Fetch failed: HTTP {response.status_code}", path=url)
                return response.json()
        except httpx.TimeoutException as e:
            raise CatalogError(f"Fetch timed out after {timeout}s", path=url) from e
        except httpx.RequestError as e:
            raise CatalogError(f"Network error: {e}", path=url) from e
        except json.JSONDecodeError as e:
            raise CatalogError(f"Invalid JSON: {e}", path=url) from e

    def _load_cache(self) -> Optional[tuple[list[dict], Optional[str]]]:
        path = self.config.cache_path
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            records, version = extract_records(document)
        except (OSError, json.JSONDecodeError, CatalogError) as e:
            logger.warning(f"Discarding unreadable cache: {e}")
            self.clear_cache()
            return None
        if is_cache_invalid(records):
            logger.info("Discarding invalid catalogue cache")
            self.clear_cache()
            return None
        return records, version

    def _save_cache(self, records: list[dict], version: Optional[str]) -> None:
        path = self.config.cache_path
        payload = {"version": version, "items": records}
        temp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(path)
        except OSError as e:
            logger.warning(f"Failed to write catalogue cache: {e}")

    def _with_media(self, items: list[PracticeItem]) -> list[PracticeItem]:
        base = self.media_base
        resolved = []
        for item in items:
            resolved.append(
                PracticeItem(
                    id=item.id,
                    prompt_audio=resolve_media_path(item.prompt_audio, AUDIO_FOLDER, base),
                    picture=resolve_media_path(item.picture, PICTURE_FOLDER, base),
                    duration_seconds=item.duration_seconds,
                    metadata=item.metadata,
                )
            )
        return resolved
