from datetime import datetime
from typing import TypedDict, Optional, List, Any

class LeadInfo(TypedDict):
    """A lead as read from one row of the Leads sheet."""
    name: str
    email: str
    company: str
    phone: str
    source: str
    row: int
    observed_at: datetime

class DispatchResult(TypedDict):
    slack_sent: bool
    email_sent: bool
    errors: List[str]

class EditState(TypedDict, total=False):
    """State shape for the edit handling workflow."""
    sheet: Any                       # worksheet handle (gspread or memory)
    spreadsheet: Any                 # owning workbook
    row: int
    column: int
    lead: LeadInfo
    skip_reason: Optional[str]       # "incomplete" | "invalid" | "already_processed" | "duplicate"
    dispatch: DispatchResult
    processed_at: str
