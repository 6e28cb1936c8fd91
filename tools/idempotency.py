import os
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional
from loguru import logger

from graph.state import LeadInfo
from tools.sheets import EMAIL_COL, STATUS_COL, PROCESSED_AT_COL, cell_text

PROCESSED = "PROCESSED"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")

class ReentrancyGuard:
    """
    Marks that an edit is being handled in this process.

    Edits arriving while the guard is held are dropped, not queued. This is
    a per-process lock: two workers or hosts each have their own guard.
    """

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Try to take the guard without blocking; yields whether it was taken."""
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()

    def reset(self) -> None:
        """Force-release a guard left held (maintenance only)."""
        if self._lock.locked():
            self._lock.release()
            logger.warning("Reentrancy guard was held and has been reset")

class ProcessingLedger:
    """Per-row PROCESSED markers stored in the Leads sheet itself."""

    def __init__(self, fail_open: Optional[bool] = None):
        # Availability over strict dedupe unless DEDUPE_FAIL_OPEN=false
        self.fail_open = _env_flag("DEDUPE_FAIL_OPEN", True) if fail_open is None else fail_open

    def has_been_processed(self, sheet, row: int) -> bool:
        """Check the row's marker column."""
        try:
            values = sheet.row_values(row)
            is_processed = cell_text(values, STATUS_COL) == PROCESSED
            if is_processed:
                logger.info(f"Row {row} already marked as {PROCESSED}")
            return is_processed
        except Exception as e:
            logger.error(f"Error checking processed status of row {row}: {e}")
            return not self.fail_open

    def is_duplicate(self, sheet, lead: LeadInfo, current_row: int) -> bool:
        """
        Scan every other data row for a processed row with the same email.

        The scan is linear in the sheet size, which is fine for the hundreds
        of rows a leads sheet holds.

        Args:
            sheet: Leads worksheet
            lead: Candidate lead
            current_row: Row the candidate lives in (skipped)

        Returns:
            True if another row with the same email (case-insensitive) is PROCESSED
        """
        try:
            values = sheet.get_all_values()
            email = lead["email"].strip().lower()

            for index, row_values in enumerate(values[1:], start=2):
                if index == current_row:
                    continue

                existing_email = cell_text(row_values, EMAIL_COL).strip().lower()
                if existing_email and existing_email == email and cell_text(row_values, STATUS_COL) == PROCESSED:
                    logger.info(f"Duplicate found: row {index} already processed {lead['email']}")
                    return True

            return False

        except Exception as e:
            logger.error(f"Error checking duplicates: {e}")
            return not self.fail_open

    def mark_as_processed(self, sheet, row: int, when: Optional[datetime] = None) -> str:
        """Write the PROCESSED marker and timestamp; returns the timestamp written."""
        stamp = (when or datetime.now()).strftime(TIMESTAMP_FORMAT)
        sheet.update_cell(row, STATUS_COL, PROCESSED)
        sheet.update_cell(row, PROCESSED_AT_COL, stamp)
        logger.info(f"Row {row} marked as processed at {stamp}")
        return stamp

    def clear_all(self, sheet) -> int:
        """Clear marker and timestamp for all data rows; returns rows cleared."""
        last_row = len(sheet.get_all_values())
        if last_row <= 1:
            return 0
        sheet.batch_clear([f"F2:G{last_row}"])
        return last_row - 1

# Global ledger and guard
ledger = ProcessingLedger()
guard = ReentrancyGuard()

def has_been_processed(sheet, row: int) -> bool:
    """Check the marker using the global ledger."""
    return ledger.has_been_processed(sheet, row)

def is_duplicate(sheet, lead: LeadInfo, current_row: int) -> bool:
    """Run duplicate detection using the global ledger."""
    return ledger.is_duplicate(sheet, lead, current_row)

def mark_as_processed(sheet, row: int, when: Optional[datetime] = None) -> str:
    """Mark a row processed using the global ledger."""
    return ledger.mark_as_processed(sheet, row, when)
