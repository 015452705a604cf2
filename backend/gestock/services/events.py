# Overview: Post-commit side-effect dispatch (audit records, low-stock alerts).

"""
Side effects run only after the primary transaction has committed and can
never fail it. Each handler runs in its own application context (and so its
own database session), on a small thread pool, or inline when the app is
configured with SIDE_EFFECTS_SYNC (tests).

Handler failures are logged and swallowed: a lost audit row or alert is an
operational problem, not a reason to report a committed sale as failed.
"""
from __future__ import annotations

import atexit
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from flask import current_app

logger = logging.getLogger(__name__)

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor(max_workers: int) -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gestock-side-effects")
            # Drain queued audit rows and alerts before the interpreter exits
            atexit.register(shutdown)
        return _executor


def _run_handler(app, handler, args, kwargs):
    with app.app_context():
        try:
            handler(*args, **kwargs)
        except Exception:
            logger.exception("Side effect %s failed", getattr(handler, "__name__", handler))


def dispatch(handler, *args, **kwargs) -> None:
    """Schedule handler(*args, **kwargs). Call only after commit."""
    app = current_app._get_current_object()
    if app.config.get("SIDE_EFFECTS_SYNC"):
        _run_handler(app, handler, args, kwargs)
        return
    executor = _get_executor(app.config.get("SIDE_EFFECT_WORKERS", 4))
    executor.submit(_run_handler, app, handler, args, kwargs)


def shutdown(wait: bool = True) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            atexit.unregister(shutdown)
            _executor = None
