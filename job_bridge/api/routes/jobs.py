"""
Job submission routes.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Request, status
from fastapi.responses import JSONResponse

from job_bridge.broker.publisher import Publisher
from job_bridge.exceptions import JobBridgeError
from job_bridge.types.api import AcceptedResponse, EnqueueResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])

JobPayloadBody = Annotated[dict[str, Any], Body(description="Job payload, forwarded as-is")]


def get_publisher(request: Request) -> Publisher:
    """FastAPI dependency returning the app's publisher."""
    return request.app.state.publisher


@router.post(
    "/enqueue",
    response_model=EnqueueResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Enqueue a job",
    description="Publish a job to RabbitMQ and return once the publish attempt completed.",
)
async def enqueue_job(
    payload: JobPayloadBody,
    publisher: Publisher = Depends(get_publisher),
) -> EnqueueResponse | JSONResponse:
    """
    Publish a job and report whether it was handed to the broker.

    A "queued" response does not mean the broker persisted the job.

    Args:
        payload: Job payload.
        publisher: Channel pool publisher.

    Returns:
        EnqueueResponse, or a 500 ErrorResponse when publishing failed.
    """
    try:
        await publisher.publish(payload)
    except JobBridgeError as e:
        logger.error("Failed to enqueue job", extra={"error": str(e)})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Failed to enqueue", detail=str(e)).model_dump(),
        )

    return EnqueueResponse()


async def _publish_in_background(publisher: Publisher, payload: dict[str, Any]) -> None:
    try:
        await publisher.publish(payload)
    except JobBridgeError:
        logger.exception("Background publish failed")


@router.post(
    "/send",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a job (fire-and-forget)",
    description="Accept a job immediately and publish it after the response is sent.",
)
async def send_job(
    payload: JobPayloadBody,
    background_tasks: BackgroundTasks,
    publisher: Publisher = Depends(get_publisher),
) -> AcceptedResponse:
    """
    Accept a job without waiting for the publish.

    Publish failures are only logged; callers must not read delivery
    success from the 202.
    """
    background_tasks.add_task(_publish_in_background, publisher, payload)
    return AcceptedResponse()
