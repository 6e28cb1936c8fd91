from typing import Optional
from graph.state import EditState, LeadInfo, DispatchResult
from tools.slack import notify_team
from tools.mailer import email_prospect
from tools.error_log import record_error
from loguru import logger

def sheet_url_of(spreadsheet) -> Optional[str]:
    if spreadsheet is None:
        return None
    try:
        return spreadsheet.url
    except Exception as e:
        logger.info(f"Could not get sheet URL: {e}")
        return None

def handle_new_lead(lead: LeadInfo, sheet_url: Optional[str] = None, spreadsheet=None) -> DispatchResult:
    """
    Notify the team and email the prospect.

    Both channels are always attempted; a failure in one is logged, recorded
    in the Error Log when a spreadsheet is given, and does not stop the other.
    """
    results: DispatchResult = {
        "slack_sent": False,
        "email_sent": False,
        "errors": [],
    }

    try:
        notify_team(lead, sheet_url)
        results["slack_sent"] = True
        logger.info("Team notified successfully")
    except Exception as e:
        logger.error(f"Failed to notify team: {e}")
        results["errors"].append(f"Slack: {e}")
        if spreadsheet is not None:
            record_error(spreadsheet, e, "notifyTeam")

    try:
        email_prospect(lead)
        results["email_sent"] = True
        logger.info("Welcome email sent")
    except Exception as e:
        logger.error(f"Failed to send email: {e}")
        results["errors"].append(f"Email: {e}")
        if spreadsheet is not None:
            record_error(spreadsheet, e, "emailProspect")

    if results["errors"]:
        logger.warning(f"Some issues occurred: {results['errors']}")
    else:
        logger.info(f"Lead {lead['email']} processed successfully")

    return results

def dispatch(state: EditState) -> EditState:
    spreadsheet = state.get("spreadsheet")
    logger.info(f"Processing complete lead: {state['lead']['name']}")
    state["dispatch"] = handle_new_lead(state["lead"], sheet_url_of(spreadsheet), spreadsheet)
    return state
