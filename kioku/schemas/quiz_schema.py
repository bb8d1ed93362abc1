from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from kioku.models.enums import QuestionType, ContentType


class ChoiceCreate(BaseModel):
    text: str = Field(..., min_length=1, description="Choice text")
    is_correct: bool = False


class ChoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    question_id: str
    text: str
    is_correct: bool
    position: int


class QuizTagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class QuizTagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    quiz_id: str
    name: str


class QuestionBase(BaseModel):
    question_type: QuestionType
    content: str = Field(..., min_length=1, description="Question prompt")
    content_type: ContentType = ContentType.TEXT
    content_language: Optional[str] = Field(None, max_length=50)
    correct_answer: Optional[str] = Field(None, description="Expected answer for fill-in-blank questions")
    multiple_answers: bool = False
    explanation: Optional[str] = None


class QuestionCreate(QuestionBase):
    choices: List[ChoiceCreate] = Field(default_factory=list, description="Choices for multiple-choice questions")


class QuestionUpdate(BaseModel):
    question_type: Optional[QuestionType] = None
    content: Optional[str] = Field(None, min_length=1)
    content_type: Optional[ContentType] = None
    content_language: Optional[str] = Field(None, max_length=50)
    correct_answer: Optional[str] = None
    multiple_answers: Optional[bool] = None
    explanation: Optional[str] = None


class QuestionResponse(QuestionBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    quiz_id: str
    position: int
    created_at: datetime
    updated_at: datetime
    choices: List[ChoiceResponse] = []
    tags: List[QuizTagResponse] = []


class QuestionReorder(BaseModel):
    question_ids: List[str] = Field(..., description="Question ids in their new order")


class QuizBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    shuffle_questions: bool = False


class QuizCreate(QuizBase):
    pass


class QuizUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    shuffle_questions: Optional[bool] = None


class QuizResponse(QuizBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    question_count: int = 0
    questions: Optional[List[QuestionResponse]] = None


class AnswerSubmission(BaseModel):
    question_id: str
    # Fill-in-blank text, or comma-separated choice ids for multiple choice
    answer: str


class AttemptSubmission(BaseModel):
    answers: List[AnswerSubmission] = Field(default_factory=list)


class QuestionResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    attempt_id: str
    question_id: str
    user_answer: str
    is_correct: bool


class QuizAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    quiz_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    total_questions: int
    correct_answers: int = 0
    score_percentage: int = Field(0, ge=0, le=100)
    question_results: List[QuestionResultResponse] = []


class QuizStats(BaseModel):
    quiz_id: str
    total_attempts: int = 0
    average_score: float = 0.0
    best_score: int = 0
    average_duration_seconds: Optional[float] = None
    last_attempt_at: Optional[datetime] = None
    recent_scores: List[int] = []
