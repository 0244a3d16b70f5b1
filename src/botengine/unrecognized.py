import logging
from concurrent.futures import Executor, Future
from typing import Optional

from .stores import UnrecognizedQuerySink

logger = logging.getLogger(__name__)


class UnrecognizedQueryLogger:
    """Records unmatched utterances for curation without touching the reply path.

    With an executor the write is fire-and-forget; without one it runs inline.
    Sink failures are logged and never raised.
    """

    def __init__(self, sink: Optional[UnrecognizedQuerySink], executor: Optional[Executor] = None) -> None:
        self.sink = sink
        self.executor = executor

    def log(self, bot_id: str, utterance: str, session_id: Optional[str] = None) -> None:
        text = utterance.strip()
        if self.sink is None or not text:
            return
        if self.executor is None:
            self._record(bot_id, text, session_id)
            return
        try:
            future = self.executor.submit(self._record, bot_id, text, session_id)
        except RuntimeError as exc:
            logger.warning("Unrecognized query dropped for bot %s: %s", bot_id, exc)
            return
        future.add_done_callback(_report_failure)

    def _record(self, bot_id: str, text: str, session_id: Optional[str]) -> None:
        try:
            self.sink.record_or_increment(bot_id, text, session_id)
        except Exception:
            logger.exception("Failed to record unrecognized query for bot %s", bot_id)


def _report_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Unrecognized query task failed: %s", exc)
