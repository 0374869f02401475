"""
Exception handlers turning domain errors into typed JSON responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from foodshare.api.middleware import get_request_id
from foodshare.core.errors import FoodShareError
from foodshare.core.logging import get_logger
from foodshare.schemas import ErrorResponse

logger = get_logger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FoodShareError)
    async def foodshare_error_handler(request: Request, exc: FoodShareError):
        logger.info("domain_error", error=exc.code, detail=exc.detail, status_code=exc.status_code)
        body = ErrorResponse(error=exc.code, detail=exc.detail, request_id=get_request_id(request))
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())
