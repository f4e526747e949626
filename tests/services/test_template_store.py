import asyncio
import os
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from task_messenger.modules.whatsapp_dispatch.services.template_store import (
    TemplateStore,
    build_mappings,
    normalize_header,
)
from task_messenger.shared.utils.exceptions import (
    TemplateColumnsError,
    TemplateLoadError,
    TemplateParseTimeoutError,
    TemplateResourceNotFoundError,
)
from task_messenger.shared.utils.offload import OffloadTimeoutError


def test_load_parses_rows_and_skips_incomplete_ones(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        mappings = await store.load()

        assert set(mappings) == {"SEND_REMINDER", "FOLLOW_UP", "DEVICE_RETURN"}
        reminder = mappings["SEND_REMINDER"]
        assert reminder.body == "שלום {first_name}, תזכורת עבור {account_name}"
        assert reminder.link == "https://example.com/pay"
        assert reminder.provider_template_id is None
        assert mappings["DEVICE_RETURN"].link is None
        assert mappings["DEVICE_RETURN"].provider_template_id == "device_return_v2"

    asyncio.run(test_logic())


def test_unchanged_file_returns_identical_cached_instance(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        first = await store.load()
        second = await store.load()

        assert first is second
        assert store.parse_count == 1

    asyncio.run(test_logic())


def test_concurrent_loads_share_one_parse(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        results = await asyncio.gather(*(store.load() for _ in range(5)))

        assert all(result is results[0] for result in results)
        assert store.parse_count == 1
        assert store.get_status()["in_flight"] == 0

    asyncio.run(test_logic())


def test_changed_mtime_triggers_reparse(make_settings, mapping_file, mapping_writer):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        first = await store.load()

        mapping_writer(mapping_file, [["New Task", "Body {first_name}", "", ""]])
        stat = os.stat(mapping_file)
        os.utime(mapping_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

        second = await store.load()
        assert second is not first
        assert set(second) == {"NEW_TASK"}
        assert store.parse_count == 2

    asyncio.run(test_logic())


def test_invalidate_forces_reparse(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        first = await store.load()
        store.invalidate()
        second = await store.load()

        assert second is not first
        assert store.parse_count == 2

    asyncio.run(test_logic())


def test_english_header_aliases_are_accepted(make_settings, tmp_path, mapping_writer):
    path = mapping_writer(
        tmp_path / "aliases.xlsx",
        [["Send Reminder", "Hello {first_name}", "https://example.com", "tmpl_1"]],
        columns=["Task Name", "Message Text", "URL", "Glassix Template"],
    )

    async def test_logic():
        store = TemplateStore(make_settings())
        mappings = await store.load(str(path))
        assert mappings["SEND_REMINDER"].provider_template_id == "tmpl_1"
        assert mappings["SEND_REMINDER"].link == "https://example.com"

    asyncio.run(test_logic())


def test_template_id_column_is_optional(make_settings, tmp_path, mapping_writer):
    path = mapping_writer(
        tmp_path / "no_template.xlsx",
        [["Send Reminder", "Hello", ""]],
        columns=["name", "text", "link"],
    )

    async def test_logic():
        mappings = await TemplateStore(make_settings()).load(str(path))
        assert mappings["SEND_REMINDER"].provider_template_id is None

    asyncio.run(test_logic())


def test_missing_required_columns_names_missing_and_found(make_settings, tmp_path, mapping_writer):
    path = mapping_writer(tmp_path / "bad.xlsx", [["Send Reminder", "Hello"]], columns=["name", "Notes"])

    async def test_logic():
        with pytest.raises(TemplateColumnsError) as exc_info:
            await TemplateStore(make_settings()).load(str(path))

        error = exc_info.value
        assert error.missing == ["מלל הודעה", "Link"]
        assert "Notes" in error.found
        assert "Missing required columns" in str(error)
        assert "Notes" in str(error)

    asyncio.run(test_logic())


def test_missing_file_raises_not_found(make_settings, tmp_path):
    async def test_logic():
        with pytest.raises(TemplateResourceNotFoundError) as exc_info:
            await TemplateStore(make_settings()).load(str(tmp_path / "nope.xlsx"))
        assert "nope.xlsx" in str(exc_info.value)

    asyncio.run(test_logic())


def test_zero_valid_rows_is_not_an_error(make_settings, tmp_path, mapping_writer):
    path = mapping_writer(tmp_path / "empty.xlsx", [["", "", "", ""]])

    async def test_logic():
        assert await TemplateStore(make_settings()).load(str(path)) == {}

    asyncio.run(test_logic())


def test_csv_mapping_is_supported(make_settings, tmp_path, mapping_writer):
    path = mapping_writer(tmp_path / "mapping.csv", [["follow-up", "Hi {first_name}", "", ""]])

    async def test_logic():
        mappings = await TemplateStore(make_settings()).load(str(path))
        assert mappings["FOLLOW_UP"].body == "Hi {first_name}"

    asyncio.run(test_logic())


def _write_two_sheets(path):
    columns = ["name", "מלל הודעה", "Link"]
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame([["First Sheet", "one", ""]], columns=columns).to_excel(writer, sheet_name="Main", index=False)
        pd.DataFrame([["Second Sheet", "two", ""]], columns=columns).to_excel(writer, sheet_name="Backup", index=False)
    return path


@pytest.mark.parametrize("selector, expected_key", [
    (None, "FIRST_SHEET"),
    ("1", "SECOND_SHEET"),
    ("Backup", "SECOND_SHEET"),
])
def test_sheet_selector(make_settings, tmp_path, selector, expected_key):
    path = _write_two_sheets(tmp_path / "sheets.xlsx")

    async def test_logic():
        mappings = await TemplateStore(make_settings(XLSX_SHEET=selector)).load(str(path))
        assert set(mappings) == {expected_key}

    asyncio.run(test_logic())


def test_unknown_sheet_lists_available_sheets(make_settings, tmp_path):
    path = _write_two_sheets(tmp_path / "sheets.xlsx")

    async def test_logic():
        with pytest.raises(TemplateLoadError) as exc_info:
            await TemplateStore(make_settings(XLSX_SHEET="Archive")).load(str(path))
        assert "Main, Backup" in str(exc_info.value)

    asyncio.run(test_logic())


def test_lookup_normalizes_raw_keys(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(XLSX_MAPPING_PATH=str(mapping_file)))
        mappings = await store.load()

        assert store.lookup("  send reminder ", mappings).key == "SEND_REMINDER"
        assert store.lookup("Follow-Up").key == "FOLLOW_UP"
        assert store.lookup("not there") is None

    asyncio.run(test_logic())


def test_large_file_parses_in_worker_process(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(
            XLSX_MAPPING_PATH=str(mapping_file),
            TEMPLATE_OFFLOAD_THRESHOLD_BYTES=0,
        ))
        mappings = await store.load()
        assert "SEND_REMINDER" in mappings

    asyncio.run(test_logic())


def test_worker_timeout_fails_the_load(make_settings, mapping_file):
    async def test_logic():
        store = TemplateStore(make_settings(
            XLSX_MAPPING_PATH=str(mapping_file),
            TEMPLATE_OFFLOAD_THRESHOLD_BYTES=0,
            TEMPLATE_PARSE_TIMEOUT_SECONDS=0.5,
        ))
        offload = AsyncMock(side_effect=OffloadTimeoutError(0.5))

        with patch("task_messenger.modules.whatsapp_dispatch.services.template_store.run_with_timeout", offload):
            with pytest.raises(TemplateParseTimeoutError) as exc_info:
                await store.load()

        assert exc_info.value.timeout_seconds == 0.5
        assert store.get_status()["cached_files"] == {}

    asyncio.run(test_logic())


def test_normalize_header_trims_and_maps_aliases():
    assert normalize_header("  Task Name ") == "name"
    assert normalize_header("url") == "Link"
    assert normalize_header("Whatever") == "Whatever"


def test_build_mappings_last_duplicate_wins():
    headers = ["name", "text", "link"]
    rows = [
        {"name": "Send Reminder", "text": "first", "link": ""},
        {"name": "send-reminder", "text": "second", "link": ""},
    ]
    mappings = build_mappings(headers, rows)
    assert mappings["SEND_REMINDER"].body == "second"
