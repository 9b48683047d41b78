"""Request/response logging stage.

Logs the user text on the way down and the assistant text on the way back.
Streamed exchanges are logged once, on the aggregated response.

Exchanges flagged by the interception stage (`VIOLATION_FLAG_KEY` set in the
request context) are logged without their text.
"""

import logging

from wordguard.config import LOGGER_ADVISOR_ORDER
from wordguard.core.advisor import BaseAdvisor
from wordguard.core.types import VIOLATION_FLAG_KEY, ChatRequest, ChatResponse


logger = logging.getLogger(__name__)

WITHHELD = "<flagged, withheld>"


class LoggerAdvisor(BaseAdvisor):
    """Log request and response text at INFO."""

    def __init__(self, order: int = LOGGER_ADVISOR_ORDER):
        self.order = order

    def before(self, request: ChatRequest, chain) -> ChatRequest:
        if request.context.get(VIOLATION_FLAG_KEY):
            logger.info("AI Request [%s]: %s", request.request_id, WITHHELD)
        else:
            logger.info("AI Request [%s]: %s", request.request_id, request.user_text())
        return request

    def after(self, response: ChatResponse, chain) -> ChatResponse:
        request_id = response.metadata.get("request_id", "-")
        if response.context.get(VIOLATION_FLAG_KEY):
            logger.info("AI Response [%s]: %s", request_id, WITHHELD)
        else:
            logger.info("AI Response [%s]: %s", request_id, response.content)
        return response
