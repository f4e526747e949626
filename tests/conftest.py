# tests/conftest.py
"""
Shared fixtures for all test modules.
Async code is driven with asyncio.run() inside sync tests, so there are no
async fixtures here.
"""

import pandas as pd
import pytest

from task_messenger.shared.core.config import Settings


def build_settings(**overrides) -> Settings:
    """Settings isolated from the developer's .env and environment defaults."""
    values = {
        "GLASSIX_BASE_URL": "https://glassix.test",
        "GLASSIX_API_KEY": "secret-token",
        "RETRY_ATTEMPTS": 3,
        "RETRY_BASE_MS": 100,
        "DISPATCH_MIN_INTERVAL_MS": 0,
        "DRY_RUN": False,
        "PAGED": False,
        "LOG_LEVEL": "DEBUG",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def write_mapping(path, rows, columns=None, sheet_name="Sheet1"):
    """Write mapping rows to .xlsx or .csv depending on the suffix."""
    columns = columns or ["name", "מלל הודעה", "Link", "שם הודעה מובנית בגלאסיקס"]
    df = pd.DataFrame(rows, columns=columns)
    if str(path).endswith(".csv"):
        df.to_csv(path, index=False)
    else:
        df.to_excel(path, index=False, sheet_name=sheet_name, engine="openpyxl")
    return path


# --- SETTINGS FIXTURES ---
@pytest.fixture
def make_settings():
    """Factory for test settings with overrides."""
    return build_settings


# --- TEMPLATE MAPPING FIXTURES ---
@pytest.fixture
def mapping_writer():
    """Factory that writes mapping rows to a file."""
    return write_mapping


@pytest.fixture
def mapping_rows():
    return [
        ["Send Reminder", "שלום {first_name}, תזכורת עבור {account_name}", "https://example.com/pay", ""],
        ["follow-up", "Hi {{first_name}}, see {{link}}", "https://example.com/f", ""],
        ["Device Return", "Please return {device_model} ({imei})", "", "device_return_v2"],
        ["", "row without a name", "", ""],
        ["Empty Body", "", "", ""],
    ]


@pytest.fixture
def mapping_file(tmp_path, mapping_rows):
    """A valid .xlsx mapping file."""
    return write_mapping(tmp_path / "mapping.xlsx", mapping_rows)


# --- CRM TASK FIXTURES ---
@pytest.fixture
def contact_task():
    """A task whose Who is a Contact with a mobile number."""
    return {
        "Id": "00T000000000001",
        "Subject": "Send Reminder",
        "Task_Type_Key__c": None,
        "Context_JSON__c": '{"device_model": "Galaxy S23", "imei": "356789012345678"}',
        "Who": {
            "attributes": {"type": "Contact"},
            "FirstName": "Dana",
            "LastName": "Levi",
            "MobilePhone": "052-876-5432",
            "Phone": None,
            "Account": {"Name": "Acme Ltd"},
        },
        "What": None,
    }


@pytest.fixture
def lead_task():
    """A task whose Who is a Lead with only the Phone field set."""
    return {
        "Id": "00T000000000002",
        "Subject": "follow-up",
        "Who": {
            "attributes": {"type": "Lead"},
            "FirstName": "Yossi",
            "MobilePhone": None,
            "Phone": "+972 54 765 4321",
        },
    }
