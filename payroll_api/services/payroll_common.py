from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from payroll_api.common.errors import APIError
from payroll_api.models.payroll.pay_run import PayRun

log = logging.getLogger(__name__)


def get_pay_run_for_period(company_id: int, year: int, month: int) -> Optional[PayRun]:
    """Returns the claimed PayRun for this company and month/year, if any."""
    return PayRun.query.filter_by(company_id=company_id, year=year, month=month).first()


@dataclass
class OperationSummary:
    """Outcome of a bulk operation. Partial outcomes are normal; always report counts."""
    succeeded: List[Any] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    cancelled: List[Any] = field(default_factory=list)

    def skip(self, ref, reason: str):
        self.skipped.append({"ref": ref, "reason": reason})

    def fail(self, ref, error: Exception):
        if isinstance(error, APIError):
            code, reason = error.code, error.message
        else:
            # driver errors carry the useful text on .orig
            code, reason = type(error).__name__, str(getattr(error, "orig", None) or error)
        self.failed.append({"ref": ref, "code": code, "reason": reason})

    def counts(self) -> Dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "cancelled": len(self.cancelled),
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "counts": self.counts(),
            "succeeded": list(self.succeeded),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
            "cancelled": list(self.cancelled),
        }


class Cancelled(Exception):
    """Work item was not started because the run was cancelled."""


@dataclass
class BoundedResult:
    done: Dict[Hashable, Any] = field(default_factory=dict)
    errors: Dict[Hashable, Exception] = field(default_factory=dict)
    cancelled: List[Hashable] = field(default_factory=list)


def run_bounded(fn: Callable[[Any], Any], items: Iterable[Tuple[Hashable, Any]],
                max_workers: int = 4, cancel_event: Optional[threading.Event] = None) -> BoundedResult:
    """
    Run `fn(payload)` for every (key, payload) pair on a bounded thread pool.

    `fn` must not touch the database session. Exceptions are collected per key,
    never raised. Items that had not started when `cancel_event` was set are
    reported in `cancelled`.
    """
    out = BoundedResult()

    def _guarded(payload):
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled()
        return fn(payload)

    with ThreadPoolExecutor(max_workers=max(1, int(max_workers or 1))) as pool:
        futures = [(key, pool.submit(_guarded, payload)) for key, payload in items]
        for key, fut in futures:
            try:
                out.done[key] = fut.result()
            except Cancelled:
                out.cancelled.append(key)
            except Exception as e:  # collected for the caller's summary
                out.errors[key] = e
    return out
