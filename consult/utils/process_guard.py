"""
Crash-fast handling for errors nothing else caught.

An exception escaping a background asyncio task or a worker thread leaves
the process in an unknown state, so it is logged and the process exits with
status 1. An external supervisor (systemd, Docker restart policy, etc.) is
expected to restart it.
"""

import asyncio
import os
import threading
from typing import Any, Callable, Dict

from .logger import get_logger

logger = get_logger(__name__)


def _terminate(code: int = 1) -> None:
    os._exit(code)


def make_loop_exception_handler(exit_func: Callable[[int], None] = _terminate):
    """Build an asyncio exception handler that logs and exits"""

    def handler(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.critical(
            "Unhandled asynchronous error, exiting",
            message=context.get("message"),
            error=repr(exc) if exc else None,
            exc_info=exc,
        )
        exit_func(1)

    return handler


def install_process_guard(
    loop: asyncio.AbstractEventLoop,
    exit_func: Callable[[int], None] = _terminate,
) -> None:
    """Treat unhandled errors in tasks and threads as fatal"""
    loop.set_exception_handler(make_loop_exception_handler(exit_func))

    def thread_hook(args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        logger.critical(
            "Unhandled error in thread, exiting",
            thread=getattr(args.thread, "name", None),
            error=repr(args.exc_value),
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        exit_func(1)

    threading.excepthook = thread_hook
