import os
import json
from typing import Any, Dict, List, Optional
import gspread
from gspread.exceptions import WorksheetNotFound
from gspread.utils import a1_to_rowcol
from google.oauth2.service_account import Credentials
from loguru import logger

LEADS_SHEET = "Leads"
LEADS_HEADERS = ["Name", "Email", "Company", "Phone", "Source", "Status", "Processed Date"]

# 1-based column positions in the Leads sheet
NAME_COL = 1
EMAIL_COL = 2
COMPANY_COL = 3
PHONE_COL = 4
SOURCE_COL = 5
STATUS_COL = 6
PROCESSED_AT_COL = 7
REQUIRED_COLUMNS = 5

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

class SheetsConfigError(RuntimeError):
    """Raised when the workbook cannot be opened because settings are missing."""

def cell_text(values: List[Any], col: int) -> str:
    """Return the text of a 1-based column from a row of values, '' when absent."""
    if col - 1 >= len(values):
        return ""
    value = values[col - 1]
    return "" if value is None else str(value)

class MemoryWorksheet:
    """In-process worksheet exposing the subset of gspread's Worksheet API we use."""

    def __init__(self, title: str, spreadsheet: "MemorySpreadsheet", rows: Optional[List[List[Any]]] = None):
        self.title = title
        self.spreadsheet = spreadsheet
        self._rows: List[List[Any]] = [list(r) for r in (rows or [])]

    def row_values(self, row: int) -> List[str]:
        # gspread drops trailing empty cells
        if row < 1 or row > len(self._rows):
            return []
        values = ["" if v is None else str(v) for v in self._rows[row - 1]]
        while values and values[-1] == "":
            values.pop()
        return values

    def get_all_values(self) -> List[List[str]]:
        width = max((len(r) for r in self._rows), default=0)
        return [
            ["" if v is None else str(v) for v in r] + [""] * (width - len(r))
            for r in self._rows
        ]

    def update_cell(self, row: int, col: int, value: Any) -> None:
        while len(self._rows) < row:
            self._rows.append([])
        cells = self._rows[row - 1]
        while len(cells) < col:
            cells.append("")
        cells[col - 1] = value

    def update(self, range_name: str = "A1", values: Optional[List[List[Any]]] = None) -> None:
        start_row, start_col = a1_to_rowcol(range_name.split(":")[0])
        for r_offset, row_values in enumerate(values or []):
            for c_offset, value in enumerate(row_values):
                self.update_cell(start_row + r_offset, start_col + c_offset, value)

    def append_row(self, values: List[Any], value_input_option: str = "USER_ENTERED") -> None:
        self._rows.append(list(values))

    def batch_clear(self, ranges: List[str]) -> None:
        for a1_range in ranges:
            start, _, end = a1_range.partition(":")
            first_row, first_col = a1_to_rowcol(start)
            last_row, last_col = a1_to_rowcol(end or start)
            for row in range(first_row, min(last_row, len(self._rows)) + 1):
                cells = self._rows[row - 1]
                for col in range(first_col, min(last_col, len(cells)) + 1):
                    cells[col - 1] = ""

class MemorySpreadsheet:
    """In-process workbook used for local runs and tests (SHEETS_BACKEND=memory)."""

    def __init__(self, title: str = "Lead Automation", url: str = "memory://lead-automation"):
        self.title = title
        self.url = url
        self._worksheets: Dict[str, MemoryWorksheet] = {}

    def worksheet(self, title: str) -> MemoryWorksheet:
        try:
            return self._worksheets[title]
        except KeyError:
            raise WorksheetNotFound(title)

    def worksheets(self) -> List[MemoryWorksheet]:
        return list(self._worksheets.values())

    def add_worksheet(self, title: str, rows: int = 1000, cols: int = 26) -> MemoryWorksheet:
        sheet = MemoryWorksheet(title, self)
        self._worksheets[title] = sheet
        return sheet

# Shared workbook for the memory backend so state survives between requests
memory_spreadsheet = MemorySpreadsheet()

def authenticate_gspread() -> gspread.Client:
    """
    Authenticate with Google Sheets using the service account JSON stored
    in GCP_SERVICE_ACCOUNT_JSON.
    """
    creds_json_str = os.getenv("GCP_SERVICE_ACCOUNT_JSON")
    if not creds_json_str:
        raise SheetsConfigError("GCP_SERVICE_ACCOUNT_JSON is not set")

    try:
        creds_dict = json.loads(creds_json_str)
    except json.JSONDecodeError as e:
        raise SheetsConfigError(f"GCP_SERVICE_ACCOUNT_JSON is not valid JSON: {e}") from e

    creds = Credentials.from_service_account_info(creds_dict, scopes=SCOPES)
    return gspread.authorize(creds)

def open_spreadsheet(spreadsheet_id: Optional[str] = None):
    """
    Open the workbook holding the Leads sheet.

    Args:
        spreadsheet_id: Google Sheets key (falls back to SPREADSHEET_ID)

    Returns:
        A gspread Spreadsheet, or the shared MemorySpreadsheet when
        SHEETS_BACKEND=memory
    """
    if os.getenv("SHEETS_BACKEND", "gspread").lower() == "memory":
        return memory_spreadsheet

    key = spreadsheet_id or os.getenv("SPREADSHEET_ID")
    if not key:
        raise SheetsConfigError("No spreadsheet id in the event and SPREADSHEET_ID is not set")

    gc = authenticate_gspread()
    spreadsheet = gc.open_by_key(key)
    logger.info(f"Opened spreadsheet {spreadsheet.title}")
    return spreadsheet

def find_worksheet(spreadsheet, title: str):
    """Return the named worksheet or None when it does not exist."""
    try:
        return spreadsheet.worksheet(title)
    except WorksheetNotFound:
        return None
