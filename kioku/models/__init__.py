from kioku.models.enums import SyncStatus, QuestionType, ContentType, SyncEntityType, SyncOperation
from kioku.models.user import User, AppState
from kioku.models.deck import Deck, Card, Tag, card_tags
from kioku.models.quiz import Quiz, Question, Choice, QuizTag, question_tags
from kioku.models.attempt import QuizAttempt, QuestionResult
from kioku.models.study_session import StudySession
from kioku.models.sync_queue import SyncQueueItem

__all__ = [
    "SyncStatus",
    "QuestionType",
    "ContentType",
    "SyncEntityType",
    "SyncOperation",
    "User",
    "AppState",
    "Deck",
    "Card",
    "Tag",
    "card_tags",
    "Quiz",
    "Question",
    "Choice",
    "QuizTag",
    "question_tags",
    "QuizAttempt",
    "QuestionResult",
    "StudySession",
    "SyncQueueItem",
]
