"""
Splits the model's text stream into the fenced JSON analysis block and the
markdown narrative around it.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

OPEN_FENCE = "```json"
CLOSE_FENCE = "```"
REQUIRED_KEYS = ("scores", "commitSummaries")


class DemuxState(str, Enum):
    SCANNING = "scanning"
    BLOCK_FOUND = "block_found"


class DemuxOutput(NamedTuple):
    narrative: str
    block: Optional[Dict[str, Any]]


def is_analysis_block(value: Any) -> bool:
    return isinstance(value, dict) and all(key in value for key in REQUIRED_KEYS)


def _partial_fence_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that could still grow into an opening fence."""
    for size in range(min(len(OPEN_FENCE) - 1, len(text)), 0, -1):
        if text.endswith(OPEN_FENCE[:size]):
            return size
    return 0


def _resolve_fence(text: str, body_start: int) -> Tuple[Any, Optional[int]]:
    """
    Find the first closing fence after ``body_start`` whose interior parses as JSON.

    Returns:
        ``(parsed, end)`` where ``end`` is the offset just past the closing
        fence, or ``(None, None)`` while no candidate parses yet.
    """
    close = text.find(CLOSE_FENCE, body_start)
    while close != -1:
        try:
            return json.loads(text[body_start:close]), close + len(CLOSE_FENCE)
        except ValueError:
            close = text.find(CLOSE_FENCE, close + 1)
    return None, None


class StreamDemultiplexer:
    """
    Incremental splitter fed with text deltas.

    The whole accumulated buffer is rescanned on every feed, so a fence may
    straddle any number of deltas. Narrative only ever grows: text inside an
    open fence, or a trailing fragment that may become one, is withheld until
    it resolves. Every fenced region that parses is cut out of the narrative;
    the first one carrying the analysis keys is emitted exactly once.
    """

    def __init__(self):
        self.buffer = ""
        self.state = DemuxState.SCANNING
        self.block: Optional[Dict[str, Any]] = None
        self._emitted = 0

    def feed(self, delta: str) -> DemuxOutput:
        """
        Append a text delta.

        Args:
            delta: Next chunk of model output.

        Returns:
            The narrative text that became safe to forward, and the analysis
            block if it was completed by this delta (None otherwise).
        """
        self.buffer += delta
        return self._advance(final=False)

    def finish(self) -> DemuxOutput:
        """
        Flush at end of stream.

        A fence that was closed but never parsed is released as narrative
        together with everything after it. A fence that never closed is dropped.
        """
        return self._advance(final=True)

    def _advance(self, final: bool) -> DemuxOutput:
        narrative, block = self._scan(final)
        fresh = narrative[self._emitted:]
        self._emitted = len(narrative)

        emitted_block = None
        if block is not None and self.state == DemuxState.SCANNING:
            self.state = DemuxState.BLOCK_FOUND
            self.block = block
            emitted_block = block
        return DemuxOutput(fresh, emitted_block)

    def _scan(self, final: bool) -> Tuple[str, Optional[Dict[str, Any]]]:
        text = self.buffer
        pieces: List[str] = []
        block = None
        pos = 0

        while True:
            start = text.find(OPEN_FENCE, pos)
            if start == -1:
                tail = text[pos:]
                held = 0 if final else _partial_fence_length(tail)
                pieces.append(tail[: len(tail) - held])
                break

            pieces.append(text[pos:start])
            parsed, end = _resolve_fence(text, start + len(OPEN_FENCE))
            if end is None:
                if not final:
                    break
                close = text.find(CLOSE_FENCE, start + len(OPEN_FENCE))
                if close == -1:
                    logging.warning(f"Dropping unterminated analysis block ({len(text) - start} chars)")
                    break
                # Closed but never valid JSON: keep it as ordinary markdown
                logging.warning("Analysis block is not valid JSON, keeping it in the report")
                end = close + len(CLOSE_FENCE)
                pieces.append(text[start:end])
                pos = end
                continue

            if block is None and is_analysis_block(parsed):
                block = parsed
            pos = end

        return "".join(pieces), block
