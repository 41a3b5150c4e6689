"""Parser for `<score> | <reason>` classification replies."""

from typing import Optional

from ..errors import MalformedResponse
from ..logging_config import get_logger
from ..pipeline.records import Annotation

logger = get_logger(__name__)

MIN_SCORE = 1
MAX_SCORE = 3


def parse_annotation(reply: str) -> Annotation:
    """
    Parse a classification reply.

    The reply must be exactly two `|`-separated fields: an integer score in
    [1, 3] followed by a free-text reason.

    Args:
        reply: Raw model reply

    Returns:
        Parsed annotation

    Raises:
        MalformedResponse: If the reply does not follow the grammar
    """
    parts = [part.strip() for part in (reply or "").strip().split("|")]
    if len(parts) != 2:
        raise MalformedResponse(f"Unexpected reply format: {reply!r}")

    score_text, reason = parts
    try:
        score = int(score_text, 10)
    except ValueError:
        raise MalformedResponse(f"Score is not an integer: {score_text!r}") from None

    if not MIN_SCORE <= score <= MAX_SCORE:
        raise MalformedResponse(f"Score out of range: {score}")

    return Annotation(score=score, reason=reason)


def parse_annotation_or_none(reply: str) -> Optional[Annotation]:
    """Parse a reply, logging and returning None when it is malformed."""
    try:
        return parse_annotation(reply)
    except MalformedResponse as e:
        logger.warning(str(e))
        return None
