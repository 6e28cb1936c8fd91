import traceback
from datetime import datetime
from loguru import logger
from gspread.exceptions import WorksheetNotFound

ERROR_SHEET = "Error Log"
ERROR_HEADERS = ["Timestamp", "Context", "Error", "Details"]

def _get_error_sheet(spreadsheet):
    try:
        return spreadsheet.worksheet(ERROR_SHEET)
    except WorksheetNotFound:
        sheet = spreadsheet.add_worksheet(title=ERROR_SHEET, rows=1000, cols=len(ERROR_HEADERS))
        sheet.append_row(ERROR_HEADERS)
        logger.info(f"Created '{ERROR_SHEET}' sheet")
        return sheet

def record_error(spreadsheet, error: BaseException, context: str) -> None:
    """Append an error row to the Error Log sheet. Never raises."""
    try:
        if error.__traceback__ is not None:
            details = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            details = "No details"

        sheet = _get_error_sheet(spreadsheet)
        sheet.append_row([
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            context,
            str(error),
            details,
        ])

    except Exception as log_error:
        logger.error(f"Could not log error ({context}: {error}): {log_error}")
