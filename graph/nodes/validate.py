import re
from graph.state import EditState, LeadInfo
from loguru import logger

REQUIRED_FIELDS = ["name", "email", "company", "phone", "source"]

# Minimal syntactic check, not RFC 5322
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

def is_valid_lead(lead: LeadInfo) -> bool:
    missing_fields = [field for field in REQUIRED_FIELDS if not str(lead.get(field) or "").strip()]
    if missing_fields:
        logger.info(f"Missing required fields: {missing_fields}")
        return False

    if not EMAIL_PATTERN.fullmatch(lead["email"]):
        logger.info(f"Invalid email format: {lead['email']}")
        return False

    return True

def validate(state: EditState) -> EditState:
    if not is_valid_lead(state["lead"]):
        logger.info("Lead data validation failed, skipping")
        state["skip_reason"] = "invalid"
    return state
