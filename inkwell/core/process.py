"""
Process-level concerns: fatal error hooks and memory readings.

Uncaught exceptions (main thread, worker threads, or the event loop) are
logged and then terminate the process with status 1; an external supervisor
is expected to restart it.
"""

import asyncio
import os
import resource
import sys
import threading
from typing import Any, Callable, Dict

ExitFunc = Callable[[int], Any]


def current_rss_mb() -> float:
    """Best-effort current RSS in MiB without external dependencies."""
    try:
        with open("/proc/self/statm", "r", encoding="utf-8") as statm:
            parts = statm.readline().split()
            if len(parts) > 1:
                pages = int(parts[1])
                page_size = os.sysconf("SC_PAGE_SIZE")
                return pages * page_size / (1024 * 1024)
    except (OSError, ValueError):
        pass

    return peak_rss_mb()


def peak_rss_mb() -> float:
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        return rss / (1024 * 1024)
    return rss / 1024


def install_process_handlers(logger: Any, exit_func: ExitFunc = os._exit) -> Callable[[], None]:
    """
    Hook ``sys.excepthook`` and ``threading.excepthook``.

    Returns a callable that restores the previous hooks.
    """
    previous_excepthook = sys.excepthook
    previous_thread_hook = threading.excepthook

    def _excepthook(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            previous_excepthook(exc_type, exc_value, exc_tb)
            return
        logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
        exit_func(1)

    def _thread_hook(args):
        if args.exc_type is SystemExit:
            return
        logger.error(
            "Uncaught exception in thread",
            thread=args.thread.name if args.thread else None,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        exit_func(1)

    sys.excepthook = _excepthook
    threading.excepthook = _thread_hook

    def restore() -> None:
        sys.excepthook = previous_excepthook
        threading.excepthook = previous_thread_hook

    return restore


def install_loop_exception_handler(
    loop: asyncio.AbstractEventLoop,
    logger: Any,
    exit_func: ExitFunc = os._exit,
) -> None:
    """
    Treat exceptions nobody awaited as fatal.

    Dropped client connections are reported by the loop too; those are logged
    as warnings and do not stop the process.
    """

    def _handler(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None or isinstance(exc, ConnectionError):
            logger.warning("Event loop warning", message=context.get("message"), error=str(exc) if exc else None)
            return
        logger.error("Unhandled asynchronous exception", message=context.get("message"), exc_info=exc)
        exit_func(1)

    loop.set_exception_handler(_handler)
