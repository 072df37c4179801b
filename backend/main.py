from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from repositories.acestep_repository import AceStepClient
from routes.api import handle_http_exception, handle_validation_error, router
from services.queue_controller import QueueController

logging.basicConfig(level=os.getenv("JUKEBOX_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

task_client = AceStepClient()

app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
app.include_router(router)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(HTTPException, handle_http_exception)
app.state.queue_controller = QueueController(task_client=task_client)


@app.on_event("startup")
def startup() -> None:
    logger.info("Using ACE-Step server at %s", task_client.base_url)
    app.state.queue_controller.start()


@app.on_event("shutdown")
def shutdown() -> None:
    app.state.queue_controller.dispose()


def run() -> None:
    # The queue lives in process memory, so a single worker only.
    uvicorn.run(
        "main:app",
        host=os.getenv("JUKEBOX_HOST", "127.0.0.1"),
        port=int(os.getenv("JUKEBOX_PORT", "8000")),
        workers=1,
    )


if __name__ == "__main__":
    run()
