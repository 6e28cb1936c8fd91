from dataclasses import dataclass
from typing import Any, Optional
from loguru import logger
from langgraph.graph import StateGraph, START, END

from graph.state import EditState
from graph.nodes.capture import check_complete, capture
from graph.nodes.validate import validate
from graph.nodes.dedupe import check_processed, check_duplicate
from graph.nodes.dispatch import dispatch
from graph.nodes.mark import mark
from tools.idempotency import ReentrancyGuard, guard as default_guard
from tools.error_log import record_error
from tools.sheets import LEADS_SHEET, STATUS_COL

HEADER_ROW = 1

@dataclass
class EditEvent:
    """A single cell edit delivered by the spreadsheet."""
    sheet: Any = None        # edited worksheet
    row: Optional[int] = None
    column: Optional[int] = None
    source: Any = None       # owning spreadsheet

def proceed_or_stop(state: EditState) -> str:
    return "stop" if state.get("skip_reason") else "continue"

def build_gate_workflow():
    """Build the read-only checks that decide whether a row should be sent."""
    workflow = StateGraph(EditState)

    # Add nodes
    workflow.add_node("check_complete", check_complete)
    workflow.add_node("capture", capture)
    workflow.add_node("validate", validate)
    workflow.add_node("check_processed", check_processed)
    workflow.add_node("check_duplicate", check_duplicate)

    # Each gate either continues or ends the run
    workflow.add_edge(START, "check_complete")
    gates = [
        ("check_complete", "capture"),
        ("validate", "check_processed"),
        ("check_processed", "check_duplicate"),
    ]
    for gate, next_node in gates:
        workflow.add_conditional_edges(gate, proceed_or_stop, {"continue": next_node, "stop": END})

    workflow.add_edge("capture", "validate")
    workflow.add_edge("check_duplicate", END)

    return workflow.compile()

def build_dispatch_workflow():
    """Build the steps run while the guard is held: re-check the ledger, send, mark."""
    workflow = StateGraph(EditState)

    workflow.add_node("check_processed", check_processed)
    workflow.add_node("check_duplicate", check_duplicate)
    workflow.add_node("handle_lead", dispatch)
    workflow.add_node("mark", mark)

    # Another edit may have marked a twin since the gate checks ran
    workflow.add_edge(START, "check_processed")
    workflow.add_conditional_edges("check_processed", proceed_or_stop, {"continue": "check_duplicate", "stop": END})
    workflow.add_conditional_edges("check_duplicate", proceed_or_stop, {"continue": "handle_lead", "stop": END})
    workflow.add_edge("handle_lead", "mark")
    workflow.add_edge("mark", END)

    return workflow.compile()

class EditRouter:
    """
    Entry point for every edit on the workbook.

    Cheap filters run first and have no side effects. Rows that pass are
    checked by the gate workflow without the reentrancy guard, so a slow read
    of one row never blocks another row's edit. The ledger checks are
    repeated once the guard is held, then the lead is sent and marked. The
    guard is released on every exit path. Nothing raised in either phase
    escapes on_edit: it is logged, written to the Error Log and swallowed.
    """

    def __init__(self, guard: Optional[ReentrancyGuard] = None):
        self.guard = guard or default_guard
        self.gate_graph = build_gate_workflow()
        self.dispatch_graph = build_dispatch_workflow()

    def on_edit(self, event: Optional[EditEvent]) -> str:
        """Handle one edit; returns what happened to it."""
        if self.guard.active:
            logger.info("Lead is being processed, ignoring edit event")
            return "busy"

        if event is None or event.sheet is None or event.source is None \
                or event.row is None or event.column is None:
            logger.info("Invalid edit event, ignoring")
            return "malformed"

        title = getattr(event.sheet, "title", None)
        if title != LEADS_SHEET:
            logger.debug(f"Edit on '{title}' sheet, ignoring")
            return "ignored"

        if event.row <= HEADER_ROW:
            logger.debug("Header row edited, ignoring")
            return "ignored"

        if event.column >= STATUS_COL:
            logger.debug("Status column edited (script-generated), ignoring")
            return "ignored"

        logger.info(f"Processing edit in row {event.row}, column {event.column}")

        try:
            state = self.gate_graph.invoke({
                "sheet": event.sheet,
                "spreadsheet": event.source,
                "row": event.row,
                "column": event.column,
            })
            if state.get("skip_reason"):
                logger.info(f"Edit in row {event.row} finished: {state['skip_reason']}")
                return state["skip_reason"]

            with self.guard.hold() as acquired:
                if not acquired:
                    logger.info("Lead is being processed, ignoring edit event")
                    return "busy"
                state = self.dispatch_graph.invoke(state)
            if state.get("skip_reason"):
                logger.info(f"Edit in row {event.row} finished: {state['skip_reason']}")
                return state["skip_reason"]

        except Exception as e:
            logger.exception(f"Error processing lead in row {event.row}: {e}")
            record_error(event.source, e, "onEdit")
            return "error"

        logger.info(f"Edit in row {event.row} finished: processed")
        return "processed"
