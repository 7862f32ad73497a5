"""Append-only transaction audit log.

Every terminal payment outcome is written as one JSON line to
{log_dir}/transactions.jsonl and as a human-readable line to a daily
transactions-YYYY-MM-DD.log. Write failures are logged and never propagate
into payment processing.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from pydantic import ValidationError

from shared.models.audit import TransactionLog, TransactionStats
from shared.models.enums import TransactionStatus

logger = logging.getLogger(__name__)

TRANSACTIONS_FILE = "transactions.jsonl"


def format_log_line(record: TransactionLog) -> str:
    """Render a record as a pipe-separated line for the daily log."""
    parts = [
        record.timestamp.isoformat(),
        record.status.value,
        record.transaction_id,
        record.order_id or "-",
        f"{record.amount if record.amount is not None else '-'} {record.currency or ''}".strip(),
        record.payment_method or "-",
    ]
    if record.requester_id:
        parts.append(f"User:{record.requester_id}")
    if record.recipient_username:
        parts.append(f"@{record.recipient_username}")
    if record.stars:
        parts.append(f"Stars:{record.stars}")
    if record.is_gift and record.gift_username:
        parts.append(f"Gift:@{record.gift_username}")
    if record.error_code:
        parts.append(f"Error:{record.error_code}")
    if record.fragment_order_id:
        parts.append(f"Fragment:{record.fragment_order_id}")
    if record.processing_error:
        parts.append(f"Failure:{record.processing_error}")
    return " | ".join(parts)


class TransactionLogger:
    """Writes and summarizes the audit log."""

    def __init__(self, log_dir: str | Path) -> None:
        self._log_dir = Path(log_dir)

    @property
    def transactions_path(self) -> Path:
        return self._log_dir / TRANSACTIONS_FILE

    def _daily_path(self, timestamp: datetime) -> Path:
        return self._log_dir / f"transactions-{timestamp.date().isoformat()}.log"

    def log_transaction(self, record: TransactionLog) -> None:
        """Append a record. Never raises on I/O errors."""
        log = logger.error if record.status in (
            TransactionStatus.ERROR,
            TransactionStatus.WEBHOOK_FAILED,
        ) else logger.info
        log(
            "Transaction %s",
            record.status.value,
            extra={
                "transaction_id": record.transaction_id,
                "order_id": record.order_id,
                "stars": record.stars,
            },
        )
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            with self.transactions_path.open("a", encoding="utf-8") as f:
                f.write(record.model_dump_json(exclude_none=True) + "\n")
            with self._daily_path(record.timestamp).open("a", encoding="utf-8") as f:
                f.write(format_log_line(record) + "\n")
        except OSError as e:
            logger.error("Failed to write transaction log: %s", e)

    def read_transactions(self) -> list[TransactionLog]:
        """Load all records; unreadable lines are skipped with a warning."""
        if not self.transactions_path.exists():
            return []
        records = []
        with self.transactions_path.open(encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(TransactionLog.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError):
                    logger.warning("Skipping corrupt transaction log line %d", line_no)
        return records

    def get_transaction_stats(self) -> TransactionStats:
        """Count records by status; totals are summed over PAID records."""
        stats = TransactionStats()
        try:
            records = self.read_transactions()
        except OSError as e:
            logger.error("Failed to read transaction log: %s", e)
            return stats

        for record in records:
            stats.total += 1
            if record.status == TransactionStatus.PAID:
                stats.paid += 1
                stats.total_amount += (record.amount or Decimal("0"))
                stats.total_stars += record.stars or 0
            elif record.status == TransactionStatus.DECLINED:
                stats.declined += 1
            elif record.status == TransactionStatus.PENDING:
                stats.pending += 1
            elif record.status == TransactionStatus.ERROR:
                stats.error += 1
        return stats
