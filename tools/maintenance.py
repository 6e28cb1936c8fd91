from datetime import datetime
from typing import Any, Dict, Optional
from loguru import logger

from graph.state import DispatchResult, LeadInfo
from graph.nodes.dispatch import handle_new_lead
from tools.idempotency import ReentrancyGuard, ledger
from tools.mailer import mailer
from tools.sheets import LEADS_SHEET, LEADS_HEADERS, find_worksheet
from tools.slack import SlackNotifier, get_slack_settings, slack_notifier

SAMPLE_LEADS = [
    ["John Smith", "john@acmecorp.com", "Acme Corp", "555-0123", "Website"],
    ["Sarah Johnson", "sarah@techstart.com", "TechStart Inc", "555-0456", "Referral"],
    ["Mike Wilson", "mike@consulting.com", "Wilson Consulting", "555-0789", "LinkedIn"],
]

def setup_lead_automation(spreadsheet) -> Dict[str, Any]:
    """Create the Leads sheet with headers and sample rows if it is empty."""
    logger.info("Setting up lead automation")

    sheet = find_worksheet(spreadsheet, LEADS_SHEET)
    created = sheet is None
    if created:
        sheet = spreadsheet.add_worksheet(title=LEADS_SHEET, rows=1000, cols=len(LEADS_HEADERS))

    seeded = False
    if not sheet.get_all_values():
        sheet.update(range_name="A1:G1", values=[LEADS_HEADERS])
        sheet.update(range_name="A2:E4", values=SAMPLE_LEADS)
        seeded = True
        logger.info("Sample data added to sheet")

    logger.info("Setup complete")
    return {"sheet": LEADS_SHEET, "created": created, "seeded": seeded}

def clear_all_processed_status(spreadsheet) -> int:
    """Clear the PROCESSED marker and timestamp on every data row."""
    logger.info("Clearing all processed status")

    sheet = find_worksheet(spreadsheet, LEADS_SHEET)
    if sheet is None:
        logger.warning("Leads sheet not found")
        return 0

    cleared = ledger.clear_all(sheet)
    logger.info(f"Cleared processed status for {cleared} rows")
    return cleared

def reset_for_testing(spreadsheet, guard: ReentrancyGuard) -> Dict[str, Any]:
    """Clear all markers, release a stuck guard and re-run setup."""
    cleared = clear_all_processed_status(spreadsheet)
    guard.reset()
    setup = setup_lead_automation(spreadsheet)
    return {"cleared": cleared, "setup": setup}

def check_config(spreadsheet=None, guard: Optional[ReentrancyGuard] = None) -> Dict[str, Any]:
    """Report which settings and resources the automation can see."""
    settings = get_slack_settings()
    mail = mailer.settings()

    report: Dict[str, Any] = {
        "slack_token_configured": bool(settings["token"]),
        "slack_channel_configured": bool(settings["channel"]),
        "slack_token_format_ok": bool(settings["token"]) and settings["token"].startswith("xoxb-"),
        "mail_configured": bool(mail["sender_email"] and mail["app_password"]),
        "reply_to": mail["operator_email"],
        "spreadsheet_accessible": spreadsheet is not None,
        "leads_sheet_exists": False,
        "rows_in_sheet": 0,
        "dedupe_fail_open": ledger.fail_open,
        "processing": bool(guard and guard.active),
    }

    if spreadsheet is not None:
        sheet = find_worksheet(spreadsheet, LEADS_SHEET)
        if sheet is not None:
            report["leads_sheet_exists"] = True
            report["rows_in_sheet"] = len(sheet.get_all_values())

    logger.info(f"Configuration check: {report}")
    return report

def run_system_test() -> DispatchResult:
    """Run both sends for a fixed test lead."""
    logger.info("Testing lead automation")
    test_lead: LeadInfo = {
        "name": "Test Person",
        "email": "test@example.com",
        "company": "Test Company",
        "phone": "555-TEST",
        "source": "Manual Test",
        "row": 999,
        "observed_at": datetime.now(),
    }
    return handle_new_lead(test_lead)

def run_slack_test(notifier: Optional[SlackNotifier] = None) -> Dict[str, Any]:
    """Post a plain test message to the configured channel."""
    notifier = notifier or slack_notifier
    try:
        response = notifier.send_text("Test message from lead automation")
        logger.info("Slack test successful")
        return {"ok": True, "ts": response.get("ts")}
    except Exception as e:
        logger.error(f"Slack test failed: {e}")
        return {"ok": False, "error": str(e)}
