from typing import Annotated, Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

from kioku.models.enums import ContentType, QuestionType
from kioku.schemas.deck_schema import DeckResponse
from kioku.schemas.quiz_schema import QuizResponse


TagName = Annotated[str, Field(min_length=1, max_length=100)]


class BundleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CardBundle(BundleModel):
    front: str = Field(..., min_length=1)
    back: str = Field(..., min_length=1)
    front_type: ContentType = ContentType.TEXT
    back_type: ContentType = ContentType.TEXT
    front_language: Optional[str] = Field(None, max_length=50)
    back_language: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    tags: List[TagName] = []


class DeckBundle(BundleModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    cards: List[CardBundle] = []
    exported_at: Optional[datetime] = None


class ChoiceBundle(BundleModel):
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionBundle(BundleModel):
    question_type: QuestionType = Field(..., alias="type")
    content: str = Field(..., min_length=1)
    content_type: ContentType = ContentType.TEXT
    content_language: Optional[str] = Field(None, max_length=50)
    correct_answer: Optional[str] = None
    multiple_answers: bool = False
    explanation: Optional[str] = None
    choices: List[ChoiceBundle] = []
    tags: List[TagName] = []


class QuizBundle(BundleModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    shuffle_questions: bool = False
    questions: List[QuestionBundle] = []
    exported_at: Optional[datetime] = None


class BundleImportRequest(BaseModel):
    content: str = Field(..., description="Bundle JSON text")


class BundleExport(BaseModel):
    content: str


class DeckImportResult(BaseModel):
    deck: DeckResponse
    cards_imported: int


class QuizImportResult(BaseModel):
    quiz: QuizResponse
    questions_imported: int
