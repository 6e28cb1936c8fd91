from datetime import datetime
from graph.state import EditState, LeadInfo
from tools.sheets import (
    NAME_COL, EMAIL_COL, COMPANY_COL, PHONE_COL, SOURCE_COL, REQUIRED_COLUMNS, cell_text
)
from loguru import logger

def is_row_complete(sheet, row: int) -> bool:
    """True when each of the five input cells has non-blank text."""
    try:
        values = sheet.row_values(row)

        for col in range(1, REQUIRED_COLUMNS + 1):
            if not cell_text(values, col).strip():
                logger.debug(f"Row {row}, column {col} is empty")
                return False

        logger.info(f"Row {row} is complete with all fields filled")
        return True

    except Exception as e:
        logger.error(f"Error checking row completion: {e}")
        return False

def extract_lead_info(sheet, row: int) -> LeadInfo:
    """Read the five input columns of a row into a LeadInfo."""
    values = sheet.row_values(row)

    return {
        "name": cell_text(values, NAME_COL).strip(),
        "email": cell_text(values, EMAIL_COL).strip(),
        "company": cell_text(values, COMPANY_COL).strip(),
        "phone": cell_text(values, PHONE_COL).strip(),
        "source": cell_text(values, SOURCE_COL).strip(),
        "row": row,
        "observed_at": datetime.now(),
    }

def check_complete(state: EditState) -> EditState:
    if not is_row_complete(state["sheet"], state["row"]):
        logger.info(f"Row {state['row']} is not complete yet, waiting for all fields")
        state["skip_reason"] = "incomplete"
    return state

def capture(state: EditState) -> EditState:
    """Materialize the lead for the edited row."""
    state["lead"] = extract_lead_info(state["sheet"], state["row"])
    logger.info(f"Captured lead from row {state['row']}: {state['lead']['email']}")
    return state
