import json
import logging
import os
from pathlib import Path

from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
CREDENTIALS_ENV = "GOOGLE_APPLICATION_CREDENTIALS"
REQUIRED_CONFIG_KEYS = ("sheet_id", "worksheet")
REPORT_HEADER = ["Scenario", "Quantity", "Low (95%)", "Mean", "High (95%)"]


def load_config(path=None):
    """Read the export config; `sheet_id` and `worksheet` are mandatory."""
    config_path = Path(path) if path else Path(__file__).with_name("sheets_sync_config.json")
    with config_path.open("r", encoding="utf-8") as handle:
        config = json.load(handle)
    missing = [key for key in REQUIRED_CONFIG_KEYS if not config.get(key)]
    if missing:
        raise ValueError(f"{config_path}: missing {', '.join(missing)}")
    return config


def col_to_a1(col_number):
    col = col_number
    letters = []
    while col > 0:
        col, remainder = divmod(col - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def a1_range(sheet, start_row, start_col, end_row, end_col):
    return f"{sheet}!{col_to_a1(start_col)}{start_row}:{col_to_a1(end_col)}{end_row}"


def build_report_rows(reports, include_header=True, precision=4):
    rows = [list(REPORT_HEADER)] if include_header else []
    for report in reports:
        for scenario, label, *interval in report.rows():
            rows.append([scenario, label] + [round(value, precision) for value in interval])
        rows.append([report.name, "avg cycles", "", round(report.avg_turns, 2), ""])
    return rows


def load_dotenv(paths):
    """Fill unset environment variables from KEY=VALUE files; first file wins."""
    for path in paths:
        if not path.exists():
            continue
        for raw_line in path.read_text(encoding="utf-8-sig").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            if key and not os.environ.get(key):
                os.environ[key] = value.strip("\"'")


def get_credentials(creds_path=None):
    creds_path = creds_path or os.getenv(CREDENTIALS_ENV)
    if not creds_path:
        load_dotenv([Path(__file__).with_name(".env"), Path.cwd() / ".env"])
        creds_path = os.getenv(CREDENTIALS_ENV)
    if not creds_path:
        raise RuntimeError(
            f"Missing {CREDENTIALS_ENV}. Set it to your service account JSON path."
        )
    if not Path(creds_path).exists():
        raise RuntimeError(f"{CREDENTIALS_ENV} points to a missing file: {creds_path}")
    return service_account.Credentials.from_service_account_file(creds_path, scopes=[SHEETS_SCOPE])


def write_scenario_reports(config, reports, service=None):
    """Write report rows at the configured anchor; returns the A1 range written."""
    rows = build_report_rows(reports, include_header=config.get("include_header", True))
    if not rows:
        raise RuntimeError("No report rows generated. Run at least one scenario.")

    start_row = config.get("start_row", 1)
    start_col = config.get("start_col", 1)
    target_range = a1_range(
        config["worksheet"],
        start_row,
        start_col,
        start_row + len(rows) - 1,
        start_col + len(REPORT_HEADER) - 1,
    )

    if service is None:
        credentials = get_credentials(config.get("credentials"))
        service = build("sheets", "v4", credentials=credentials)
    values = service.spreadsheets().values()
    if config.get("clear_first"):
        values.clear(spreadsheetId=config["sheet_id"], range=target_range, body={}).execute()
    values.update(
        spreadsheetId=config["sheet_id"],
        range=target_range,
        valueInputOption="RAW",
        body={"values": rows},
    ).execute()
    logger.info("Wrote %d rows to %s", len(rows), target_range)
    return target_range
