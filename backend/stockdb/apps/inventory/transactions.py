"""
Unit of work for ledger mutations.

`run_atomic` runs one mutating operation as a single database transaction
and commits it. Lock conflicts (deadlock, lock timeout, "database is locked")
and lazy-insert races roll the transaction back and re-run the whole
operation, validation included, with exponential backoff.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from .errors import InventoryError, LedgerSystemError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_ATTEMPTS = int(os.getenv("STOCK_TX_RETRY_ATTEMPTS", "3"))
RETRY_BACKOFF_MS = int(os.getenv("STOCK_TX_RETRY_BACKOFF_MS", "50"))
RETRY_MAX_BACKOFF_MS = int(os.getenv("STOCK_TX_RETRY_MAX_BACKOFF_MS", "1000"))


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_seconds: float = 0.05
    max_backoff_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        delay = self.backoff_seconds * (2 ** max(attempt - 1, 0))
        return min(delay, self.max_backoff_seconds)


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        attempts=max(RETRY_ATTEMPTS, 1),
        backoff_seconds=max(RETRY_BACKOFF_MS, 0) / 1000.0,
        max_backoff_seconds=max(RETRY_MAX_BACKOFF_MS, 0) / 1000.0,
    )


def run_atomic(
    db: Session,
    work: Callable[[], T],
    *,
    policy: Optional[RetryPolicy] = None,
    operation: str = "inventory",
) -> T:
    """
    Run `work` inside one transaction on `db` and commit it.

    Domain errors roll back and propagate on the first attempt. Conflicts are
    retried up to `policy.attempts` times, then surface as LedgerSystemError.
    """
    policy = policy or default_retry_policy()
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            db.commit()
            return result
        except InventoryError:
            db.rollback()
            raise
        except (OperationalError, IntegrityError) as exc:
            db.rollback()
            if attempt >= policy.attempts:
                logger.error(
                    "Stock transaction failed after retries",
                    extra={"operation": operation, "attempts": attempt, "error": str(exc.orig)},
                )
                raise LedgerSystemError(
                    "Stock is busy right now. Please try again.",
                    details={"operation": operation, "attempts": attempt},
                ) from exc
            delay = policy.delay_for(attempt)
            logger.warning(
                "Stock transaction conflict, retrying",
                extra={"operation": operation, "attempt": attempt, "delay_sec": delay},
            )
            if delay > 0:
                time.sleep(delay)
        except Exception:
            db.rollback()
            raise
