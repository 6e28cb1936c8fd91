from graph.state import EditState
from tools.idempotency import mark_as_processed

def mark(state: EditState) -> EditState:
    """Record that both sends were attempted, whatever their outcome."""
    state["processed_at"] = mark_as_processed(state["sheet"], state["row"])
    return state
