"""Per-handler call time limits."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Flask, g, has_app_context

from .errors import HandlerTimeoutError

T = TypeVar("T")

logger = logging.getLogger("datamachine.engine")


def call_abandoned() -> bool:
    """True inside a handler call whose caller already gave up waiting."""

    if not has_app_context():
        return False
    cancelled = g.get("handler_cancelled")
    return cancelled is not None and cancelled.is_set()


def run_with_timeout(
    app: Flask,
    func: Callable[[], T],
    timeout: float | None,
    label: str = "handler",
    on_abandon: Callable[[], Any] | None = None,
) -> T:
    """Run ``func`` on a worker thread inside an app context, bounded by ``timeout``.

    A falsy timeout runs the call inline. The worker cannot be killed, so a
    timed out call is flagged as abandoned (see :func:`call_abandoned`) and
    its eventual result discarded. ``on_abandon`` runs on the worker, inside
    its app context, once an abandoned call returns.
    """
    if not timeout:
        return func()

    cancelled = threading.Event()
    lock = threading.Lock()
    state = {"finished": False}

    def _call() -> Any:
        with app.app_context():
            g.handler_cancelled = cancelled
            try:
                return func()
            finally:
                with lock:
                    state["finished"] = True
                    abandoned = cancelled.is_set()
                if abandoned and on_abandon is not None:
                    try:
                        on_abandon()
                    except Exception:
                        logger.exception("Cleanup after abandoned %s failed", label)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="dm-handler")
    future = executor.submit(_call)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        with lock:
            if not state["finished"]:
                cancelled.set()
        if not cancelled.is_set():
            # Finished right at the deadline; keep the result.
            return future.result()
        raise HandlerTimeoutError(f"{label} exceeded {timeout} seconds") from exc
    finally:
        executor.shutdown(wait=False)
