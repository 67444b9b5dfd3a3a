from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from aqualink.services.errors import WorkflowError

logger = logging.getLogger(__name__)


def _field_label(loc: tuple) -> str:
    parts = [str(part) for part in loc if part != 'body']
    return '.'.join(parts) or 'body'


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        body: dict = {'message': exc.message}
        if exc.errors:
            body['errors'] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [f"{_field_label(tuple(err.get('loc', ())))}: {err.get('msg')}" for err in exc.errors()]
        return JSONResponse(status_code=400, content={'message': 'Validation failed', 'errors': errors})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return JSONResponse(status_code=500, content={'message': 'Internal server error'})
