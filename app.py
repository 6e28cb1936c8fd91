import os
import json
import time
from typing import Dict, Any
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from loguru import logger
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Import our modules
from graph.router import EditEvent, EditRouter
from tools.idempotency import guard
from tools.sheets import open_spreadsheet, find_worksheet
from tools import maintenance

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

# Initialize FastAPI app
app = FastAPI(
    title="Lead Sheet Automation",
    description="Notifies Slack and emails new leads as rows in the Leads sheet are completed",
    version="1.0.0"
)

router = EditRouter(guard)

def _as_int(value: Any):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

def event_from_payload(payload: Dict[str, Any], spreadsheet) -> EditEvent:
    """Build an EditEvent; missing parts stay None and the router ignores it."""
    sheet_name = payload.get("sheet")
    sheet = find_worksheet(spreadsheet, sheet_name) if sheet_name else None
    return EditEvent(
        sheet=sheet,
        row=_as_int(payload.get("row")),
        column=_as_int(payload.get("column")),
        source=spreadsheet,
    )

@app.post("/webhooks/edit")
async def ingest_edit(req: Request):
    """
    Edit webhook called by the spreadsheet trigger for every cell edit.

    Expected payload:
    {
        "sheet": "Leads",
        "row": 3,
        "column": 5,
        "spreadsheet_id": "1AbC..."
    }
    """
    start_time = time.time()
    try:
        payload = await req.json()
    except json.JSONDecodeError:
        logger.info("Edit event body is not JSON, ignoring")
        return JSONResponse(status_code=200, content={"status": "malformed"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=200, content={"status": "malformed"})

    try:
        spreadsheet = await run_in_threadpool(open_spreadsheet, payload.get("spreadsheet_id"))
        event = await run_in_threadpool(event_from_payload, payload, spreadsheet)
    except Exception as e:
        logger.error(f"Could not open spreadsheet for edit event: {e}")
        return JSONResponse(status_code=502, content={"status": "error", "message": str(e)})

    outcome = await run_in_threadpool(router.on_edit, event)

    processing_time = time.time() - start_time
    logger.info(f"Edit event handled in {processing_time:.2f}s: {outcome}")

    return JSONResponse(
        status_code=200,
        content={"status": outcome, "processing_time": processing_time}
    )

@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0",
        "services": {
            "workflow": "ready",
            "processing": guard.active
        }
    }

@app.get("/admin/config")
def get_config():
    """Report configuration and sheet access."""
    try:
        spreadsheet = open_spreadsheet()
    except Exception as e:
        logger.error(f"Spreadsheet not accessible: {e}")
        spreadsheet = None
    return maintenance.check_config(spreadsheet, guard)

@app.post("/admin/setup")
def setup():
    """Create the Leads sheet with headers and sample rows."""
    try:
        return maintenance.setup_lead_automation(open_spreadsheet())
    except Exception as e:
        logger.error(f"Setup failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/admin/reset")
def reset():
    """Clear every PROCESSED marker so leads can be re-run."""
    try:
        return maintenance.reset_for_testing(open_spreadsheet(), guard)
    except Exception as e:
        logger.error(f"Reset failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/admin/test-system")
def system_smoke_test():
    """Send the Slack notification and welcome email for a test lead."""
    return maintenance.run_system_test()

@app.post("/admin/test-slack")
def slack_smoke_test():
    """Post a plain test message to Slack."""
    return maintenance.run_slack_test()

# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Lead Sheet Automation")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
