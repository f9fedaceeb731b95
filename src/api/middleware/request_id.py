"""Request ID middleware: correlates API logs with the calling system's id."""

import logging
import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Ids are echoed into headers and log lines.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id, stored on ``request.state.request_id``.

    An incoming X-Request-ID is kept when it is a short token of letters,
    digits and ``._:-``; anything else is replaced with a UUID4. The id is
    returned in the response's X-Request-ID header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and _VALID_REQUEST_ID.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())
            if incoming:
                logger.debug(
                    "request_id_replaced: request_id=%s, incoming_length=%s",
                    request_id,
                    len(incoming),
                )
        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
