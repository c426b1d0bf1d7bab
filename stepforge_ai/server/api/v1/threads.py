"""
Thread API Endpoints.

This module exposes the PES engine per conversation thread:

- posting a user message (plan or refine, execute, synthesize),
- resuming a thread suspended on a human approval,
- reading the persisted plan state.
"""

from fastapi import APIRouter, HTTPException

from stepforge_ai.agent_core.errors import ResumeError, ThreadNotFoundError
from stepforge_ai.agent_core.schemas.domain import AgentFinalResponse, PlanState
from stepforge_ai.core.logging_config import get_logger
from stepforge_ai.server.schemas import ErrorDetail, MessageCreate, ResumeRequest
from stepforge_ai.server.services.deps import EngineServiceDep

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "/{thread_id}/messages",
    response_model=AgentFinalResponse,
    summary="Send Message",
    description="Process a user message on the thread and return the final response.",
    response_description="The final response with execution metadata.",
)
async def post_message(thread_id: str, message_in: MessageCreate, service: EngineServiceDep):
    """
    Process a user message.

    Run failures are reported in the response metadata with status ``error``;
    this endpoint does not turn them into HTTP errors.
    """
    logger.info(f"Received message for thread {thread_id}")
    return await service.process_message(thread_id, message_in.query, user_id=message_in.user_id)


@router.post(
    "/{thread_id}/resume",
    response_model=AgentFinalResponse,
    summary="Resume Thread",
    description="Approve or reject the tool call a thread is suspended on and continue execution.",
    response_description="The final response after resuming.",
    responses={
        404: {"model": ErrorDetail, "description": "Unknown thread"},
        409: {"model": ErrorDetail, "description": "Thread is not awaiting a decision"},
    },
)
async def resume_thread(thread_id: str, resume_in: ResumeRequest, service: EngineServiceDep):
    """
    Resume a suspended thread.

    Returns 404 for an unknown thread and 409 when the thread is not paused or
    the suspension id does not match.
    """
    try:
        return await service.resume(
            thread_id,
            approved=resume_in.approved,
            reason=resume_in.reason,
            suspension_id=resume_in.suspension_id,
        )
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ResumeError as e:
        logger.warning(f"Rejected resume for thread {thread_id}: {e.message}")
        raise HTTPException(status_code=409, detail=e.message)


@router.get(
    "/{thread_id}/plan",
    response_model=PlanState,
    summary="Get Plan",
    responses={404: {"model": ErrorDetail, "description": "Thread has no plan"}},
    description="Retrieve the persisted plan state of a thread.",
    response_description="The thread's plan state.",
)
async def get_plan(thread_id: str, service: EngineServiceDep):
    """Return the plan state, or 404 when the thread has none."""
    plan = await service.get_plan(thread_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"No plan state found for thread: {thread_id}")
    return plan
