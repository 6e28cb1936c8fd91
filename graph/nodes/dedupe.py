from graph.state import EditState
from tools.idempotency import has_been_processed, is_duplicate
from loguru import logger

def check_processed(state: EditState) -> EditState:
    """Skip rows whose marker is already PROCESSED."""
    if has_been_processed(state["sheet"], state["row"]):
        logger.info(f"Lead in row {state['row']} already processed, skipping")
        state["skip_reason"] = "already_processed"
    return state

def check_duplicate(state: EditState) -> EditState:
    """Skip leads whose email was already processed in another row."""
    if is_duplicate(state["sheet"], state["lead"], state["row"]):
        logger.info(f"Duplicate email {state['lead']['email']} detected, skipping")
        state["skip_reason"] = "duplicate"
    return state
