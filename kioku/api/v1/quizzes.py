from fastapi import APIRouter, Depends, status
from typing import List

from kioku.core.logging import get_logger
from kioku.dependencies import (
    get_quiz_service, get_attempt_service, get_stats_service, get_bundle_service, get_session_context
)
from kioku.schemas.bundle_schema import BundleImportRequest, BundleExport, QuizImportResult
from kioku.schemas.quiz_schema import (
    QuizCreate, QuizUpdate, QuizResponse, QuestionCreate, QuestionUpdate, QuestionResponse,
    QuestionReorder, ChoiceCreate, QuizTagCreate, QuizTagResponse,
    AttemptSubmission, QuizAttemptResponse, QuizStats
)
from kioku.services.attempt_service import AttemptService
from kioku.services.bundle_service import BundleService
from kioku.services.quiz_service import QuizService
from kioku.services.stats_service import StatsService
from kioku.services.user_service import SessionContext

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=QuizResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
        quiz_data: QuizCreate,
        ctx: SessionContext = Depends(get_session_context),
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.create_quiz(ctx, quiz_data)


@router.get("/", response_model=List[QuizResponse])
async def list_quizzes(
        ctx: SessionContext = Depends(get_session_context),
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.list_quizzes(ctx)


@router.post("/import", response_model=QuizImportResult, status_code=status.HTTP_201_CREATED)
async def import_quiz(
        request: BundleImportRequest,
        ctx: SessionContext = Depends(get_session_context),
        bundle_service: BundleService = Depends(get_bundle_service)
):
    return await bundle_service.import_quiz(ctx, request.content)


# Questions and attempts addressed by their own id

@router.get("/questions/{question_id}", response_model=QuestionResponse)
async def get_question(question_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.get_question(question_id)


@router.put("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
        question_id: str,
        question_data: QuestionUpdate,
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.update_question(question_id, question_data)


@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(question_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    await quiz_service.delete_question(question_id)


@router.put("/questions/{question_id}/choices", response_model=QuestionResponse)
async def replace_choices(
        question_id: str,
        choices: List[ChoiceCreate],
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.replace_choices(question_id, choices)


@router.get("/questions/{question_id}/tags", response_model=List[QuizTagResponse])
async def list_question_tags(question_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.list_question_tags(question_id)


@router.put("/questions/{question_id}/tags/{tag_id}", response_model=QuestionResponse)
async def add_tag_to_question(question_id: str, tag_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.add_tag_to_question(question_id, tag_id)


@router.delete("/questions/{question_id}/tags/{tag_id}", response_model=QuestionResponse)
async def remove_tag_from_question(
        question_id: str,
        tag_id: str,
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.remove_tag_from_question(question_id, tag_id)


@router.get("/attempts/{attempt_id}", response_model=QuizAttemptResponse)
async def get_attempt(attempt_id: str, attempt_service: AttemptService = Depends(get_attempt_service)):
    return await attempt_service.get_attempt(attempt_id)


@router.post("/attempts/{attempt_id}/submit", response_model=QuizAttemptResponse)
async def submit_attempt(
        attempt_id: str,
        submission: AttemptSubmission,
        attempt_service: AttemptService = Depends(get_attempt_service)
):
    """Grade the submitted answers and complete the attempt"""
    return await attempt_service.submit_attempt(attempt_id, submission.answers)


# Quiz-scoped routes

@router.get("/{quiz_id}", response_model=QuizResponse)
async def get_quiz(quiz_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    """Quiz with its questions, choices and tags"""
    return await quiz_service.get_quiz(quiz_id)


@router.put("/{quiz_id}", response_model=QuizResponse)
async def update_quiz(quiz_id: str, quiz_data: QuizUpdate, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.update_quiz(quiz_id, quiz_data)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(quiz_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    await quiz_service.delete_quiz(quiz_id)


@router.get("/{quiz_id}/export", response_model=BundleExport)
async def export_quiz(quiz_id: str, bundle_service: BundleService = Depends(get_bundle_service)):
    return BundleExport(content=await bundle_service.export_quiz(quiz_id))


@router.get("/{quiz_id}/questions", response_model=List[QuestionResponse])
async def list_questions(quiz_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.list_questions(quiz_id)


@router.post("/{quiz_id}/questions", response_model=QuestionResponse, status_code=status.HTTP_201_CREATED)
async def create_question(
        quiz_id: str,
        question_data: QuestionCreate,
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.create_question(quiz_id, question_data)


@router.put("/{quiz_id}/questions/order", response_model=List[QuestionResponse])
async def reorder_questions(
        quiz_id: str,
        reorder: QuestionReorder,
        quiz_service: QuizService = Depends(get_quiz_service)
):
    return await quiz_service.reorder_questions(quiz_id, reorder.question_ids)


@router.get("/{quiz_id}/tags", response_model=List[QuizTagResponse])
async def list_tags(quiz_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.list_tags(quiz_id)


@router.post("/{quiz_id}/tags", response_model=QuizTagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(quiz_id: str, tag_data: QuizTagCreate, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.create_tag(quiz_id, tag_data.name)


@router.get("/{quiz_id}/tags/by-name/{name}", response_model=QuizTagResponse)
async def get_tag_by_name(quiz_id: str, name: str, quiz_service: QuizService = Depends(get_quiz_service)):
    return await quiz_service.get_tag_by_name(quiz_id, name)


@router.delete("/{quiz_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(quiz_id: str, tag_id: str, quiz_service: QuizService = Depends(get_quiz_service)):
    await quiz_service.delete_tag(quiz_id, tag_id)


@router.post("/{quiz_id}/attempts", response_model=QuizAttemptResponse, status_code=status.HTTP_201_CREATED)
async def start_attempt(quiz_id: str, attempt_service: AttemptService = Depends(get_attempt_service)):
    return await attempt_service.start_attempt(quiz_id)


@router.get("/{quiz_id}/attempts", response_model=List[QuizAttemptResponse])
async def list_attempts(quiz_id: str, attempt_service: AttemptService = Depends(get_attempt_service)):
    return await attempt_service.list_attempts(quiz_id)


@router.get("/{quiz_id}/stats", response_model=QuizStats)
async def get_quiz_stats(quiz_id: str, stats_service: StatsService = Depends(get_stats_service)):
    return await stats_service.quiz_stats(quiz_id)
