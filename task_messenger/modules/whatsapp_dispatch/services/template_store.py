"""
Template Store
Loads the task-type → message mapping spreadsheet and serves lookups.

Handles:
- .xlsx/.xls via pandas + openpyxl, .csv via pandas
- Header aliases (English and Hebrew column spellings)
- Optional sheet selector (zero-based index or sheet name)
- Per-file cache keyed by modification time (st_mtime_ns)
- Single-flight loading: concurrent callers share one parse
- Large files parsed in a worker process with a hard timeout

Caching Strategy:
1. Unchanged mtime: the cached dict is returned as-is (same instance)
2. Changed mtime: the file is re-parsed on the next load()
3. Manual: call invalidate() to force a re-parse
"""
import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from task_messenger.shared.core.config import Settings, settings as default_settings
from task_messenger.shared.core.constants import CSV_EXTENSIONS, EXCEL_EXTENSIONS
from task_messenger.shared.utils.exceptions import (
    TemplateColumnsError,
    TemplateLoadError,
    TemplateParseTimeoutError,
    TemplateResourceNotFoundError,
)
from task_messenger.shared.utils.offload import OffloadTimeoutError, run_with_timeout
from task_messenger.modules.whatsapp_dispatch.schemas import TemplateMapping
from task_messenger.modules.whatsapp_dispatch.services.key_normalizer import normalize_task_key

logger = logging.getLogger("template_store")

# Canonical column names
COLUMN_NAME = "name"
COLUMN_BODY = "מלל הודעה"
COLUMN_LINK = "Link"
COLUMN_TEMPLATE_ID = "שם הודעה מובנית בגלאסיקס"

HEADER_ALIASES: Dict[str, List[str]] = {
    COLUMN_NAME: ["name", "Name", "NAME", "Task Name", "task_name"],
    COLUMN_BODY: ["מלל הודעה", "Message Text", "message_text", "text"],
    COLUMN_LINK: ["Link", "link", "LINK", "URL", "url"],
    COLUMN_TEMPLATE_ID: [
        "שם הודעה מובנית בגלאסיקס",
        "Glassix Template",
        "glassix_template",
        "template_name",
    ],
}

REQUIRED_COLUMNS = [COLUMN_NAME, COLUMN_BODY, COLUMN_LINK]

RawRows = Tuple[List[str], List[Dict[str, str]]]


def normalize_header(header: Any) -> str:
    """Map a spreadsheet header to its canonical column name, or return it trimmed."""
    trimmed = str(header).strip()
    for canonical, aliases in HEADER_ALIASES.items():
        if trimmed in aliases:
            return canonical
    return trimmed


def _select_sheet(sheet_names: List[str], selector: Optional[str]) -> str:
    if not sheet_names:
        raise TemplateLoadError("Excel file has no sheets")
    if not selector:
        return sheet_names[0]

    selector = selector.strip()
    if selector.isdigit():
        index = int(selector)
        if index < len(sheet_names):
            return sheet_names[index]
    elif selector in sheet_names:
        return selector

    raise TemplateLoadError(
        f'Sheet "{selector}" not found. Available sheets: {", ".join(sheet_names)}'
    )


def read_mapping_rows(path: str, sheet: Optional[str] = None) -> RawRows:
    """
    Read the raw table. Runs inline or inside a worker process, so it only
    returns plain lists and dicts.

    Returns:
        (headers, rows) with every cell as a string and empty cells as ""
    """
    extension = os.path.splitext(path)[1].lower()

    if extension in CSV_EXTENSIONS:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    elif extension in EXCEL_EXTENSIONS:
        with pd.ExcelFile(path) as workbook:
            sheet_name = _select_sheet([str(name) for name in workbook.sheet_names], sheet)
            df = workbook.parse(sheet_name=sheet_name, dtype=str)
    else:
        raise TemplateLoadError(f"Unsupported template file type: {extension or '(none)'}")

    df = df.fillna("")
    headers = [str(column) for column in df.columns]
    df.columns = headers
    return headers, df.to_dict(orient="records")


def build_mappings(headers: List[str], rows: List[Dict[str, str]]) -> Dict[str, TemplateMapping]:
    """
    Resolve aliases, validate required columns and build the key → mapping dict.

    Rows without a name or body are skipped. Duplicate keys: last row wins.

    Raises:
        TemplateColumnsError: a required column is missing after alias resolution
    """
    canonical = {header: normalize_header(header) for header in headers}
    found = list(canonical.values())
    missing = [column for column in REQUIRED_COLUMNS if column not in found]
    if missing:
        raise TemplateColumnsError(missing, found)

    mappings: Dict[str, TemplateMapping] = {}
    skipped = 0

    for row in rows:
        values = {canonical[header]: str(value).strip() for header, value in row.items() if header in canonical}

        name = values.get(COLUMN_NAME, "")
        body = values.get(COLUMN_BODY, "")
        if not name or not body:
            skipped += 1
            continue

        key = normalize_task_key(name)
        if key in mappings:
            logger.debug(f"Duplicate template key {key}, last row wins")

        mappings[key] = TemplateMapping(
            key=key,
            body=body,
            link=values.get(COLUMN_LINK) or None,
            provider_template_id=values.get(COLUMN_TEMPLATE_ID) or None,
        )

    if skipped:
        logger.debug(f"Skipped {skipped} rows without a name or message body")

    return mappings


@dataclass
class CacheEntry:
    """Parsed mappings for one file at one modification time."""
    mtime_ns: int
    mappings: Dict[str, TemplateMapping]
    loaded_at: datetime = field(default_factory=datetime.now)


class TemplateStore:
    """
    Owns the template cache. Construct once and pass it to whoever needs lookups.

    Usage:
        store = TemplateStore(settings)
        mappings = await store.load()
        mapping = store.lookup("Send Reminder", mappings)
    """

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self._cache: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[Tuple[str, int], "asyncio.Future[Dict[str, TemplateMapping]]"] = {}
        self._current: Optional[Dict[str, TemplateMapping]] = None
        self.parse_count = 0

    # ============================================
    # LOADING
    # ============================================

    async def load(self, source_path: Optional[str] = None) -> Dict[str, TemplateMapping]:
        """
        Load mappings, re-parsing only when the file changed.

        Args:
            source_path: Spreadsheet path; defaults to XLSX_MAPPING_PATH

        Returns:
            Dict of normalized task key → TemplateMapping (may be empty)

        Raises:
            TemplateResourceNotFoundError: the file does not exist
            TemplateColumnsError: required columns missing
            TemplateParseTimeoutError: offloaded parse exceeded its budget
            TemplateLoadError: any other read/parse failure
        """
        path = os.path.abspath(source_path or self.settings.XLSX_MAPPING_PATH)

        try:
            stat = os.stat(path)
        except FileNotFoundError:
            logger.error(f"Template mapping file not found: {path}")
            raise TemplateResourceNotFoundError(path)

        # Lock-free fast path
        entry = self._cache.get(path)
        if entry is not None and entry.mtime_ns == stat.st_mtime_ns:
            logger.debug("Using cached template map (file unchanged)")
            self._current = entry.mappings
            return entry.mappings

        flight_key = (path, stat.st_mtime_ns)
        task = self._in_flight.get(flight_key)
        if task is None:
            task = asyncio.ensure_future(self._load_fresh(path, stat.st_mtime_ns, stat.st_size))
            self._in_flight[flight_key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(flight_key, None))
        else:
            logger.debug("Template load already in flight, awaiting it")

        mappings = await asyncio.shield(task)
        self._current = mappings
        return mappings

    async def _load_fresh(self, path: str, mtime_ns: int, size: int) -> Dict[str, TemplateMapping]:
        sheet = self.settings.XLSX_SHEET
        threshold = self.settings.TEMPLATE_OFFLOAD_THRESHOLD_BYTES
        logger.info(f"Loading template mappings from {path} ({size} bytes)")

        try:
            if size > threshold:
                timeout = self.settings.TEMPLATE_PARSE_TIMEOUT_SECONDS
                logger.info(f"Large template file, parsing in worker process (timeout {timeout:g}s)")
                try:
                    headers, rows = await run_with_timeout(read_mapping_rows, (path, sheet), timeout)
                except OffloadTimeoutError as e:
                    raise TemplateParseTimeoutError(e.timeout_seconds) from e
            else:
                headers, rows = await asyncio.to_thread(read_mapping_rows, path, sheet)
        except TemplateLoadError:
            raise
        except Exception as e:
            logger.error(f"Failed to parse template file {path}: {e}")
            raise TemplateLoadError(f"Failed to parse template file {path}: {e}") from e

        self.parse_count += 1
        mappings = build_mappings(headers, rows)
        self._cache[path] = CacheEntry(mtime_ns=mtime_ns, mappings=mappings)

        logger.info(f"Template mappings loaded successfully: {len(mappings)} templates")
        return mappings

    # ============================================
    # LOOKUP / MAINTENANCE
    # ============================================

    def lookup(
        self,
        raw_key: str,
        mappings: Optional[Dict[str, TemplateMapping]] = None
    ) -> Optional[TemplateMapping]:
        """Find the mapping for a raw (unnormalized) task key in the given or last loaded set."""
        source = mappings if mappings is not None else self._current
        if not source:
            return None
        return source.get(normalize_task_key(raw_key))

    def invalidate(self, source_path: Optional[str] = None) -> None:
        """Drop cached mappings for one file, or for all files."""
        if source_path is None:
            self._cache.clear()
            self._current = None
            logger.info("Template cache invalidated")
        else:
            self._cache.pop(os.path.abspath(source_path), None)
            logger.info(f"Template cache invalidated for {source_path}")

    def get_status(self) -> Dict[str, Any]:
        """Get cache status for monitoring."""
        return {
            "cached_files": {
                path: {
                    "templates": len(entry.mappings),
                    "mtime_ns": entry.mtime_ns,
                    "loaded_at": entry.loaded_at.isoformat(),
                }
                for path, entry in self._cache.items()
            },
            "in_flight": len(self._in_flight),
            "parse_count": self.parse_count,
        }
