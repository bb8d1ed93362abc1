"""
Deck and quiz bundles: portable JSON documents for import and export.

Imports go through the regular deck and quiz services, so imported decks and
cards are local_only and queued for sync like any locally created entity.
"""
from typing import Callable, Dict, List, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.schemas.bundle_schema import (
    DeckBundle, CardBundle, QuizBundle, QuestionBundle, ChoiceBundle,
    DeckImportResult, QuizImportResult
)
from kioku.schemas.deck_schema import DeckCreate, CardCreate
from kioku.schemas.quiz_schema import QuizCreate, QuestionCreate, ChoiceCreate
from kioku.services.deck_service import DeckService
from kioku.services.quiz_service import QuizService
from kioku.services.user_service import SessionContext
from kioku.utils.exceptions import KiokuError, ValidationError

logger = get_logger(__name__)

B = TypeVar("B", bound=BaseModel)
R = TypeVar("R", bound=BaseModel)


def _malformed(e: PydanticValidationError) -> ValidationError:
    return ValidationError(
        "Malformed bundle",
        details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]}
    )


def _parse_bundle(model: Type[B], content: str) -> B:
    try:
        return model.model_validate_json(content)
    except PydanticValidationError as e:
        raise _malformed(e)


def _build_requests(build: Callable[[], List[R]]) -> List[R]:
    """Build every create request up front so a bad entry fails before any store write"""
    try:
        return build()
    except PydanticValidationError as e:
        raise _malformed(e)


class BundleService:
    def __init__(self, deck_service: DeckService, quiz_service: QuizService):
        self.deck_service = deck_service
        self.quiz_service = quiz_service

    async def import_deck(self, ctx: SessionContext, content: str) -> DeckImportResult:
        """
        Create a deck with its cards and tags from a bundle.

        The bundle is fully validated first; if a later write fails the
        partly imported deck is deleted again, queued entries included.
        """
        bundle = _parse_bundle(DeckBundle, content)
        deck_request = DeckCreate(name=bundle.name, description=bundle.description)
        card_requests = _build_requests(
            lambda: [CardCreate(**card.model_dump(exclude={"tags"})) for card in bundle.cards]
        )

        deck = await self.deck_service.create_deck(ctx, deck_request)
        try:
            tag_ids: Dict[str, str] = {}
            for card_bundle, card_request in zip(bundle.cards, card_requests):
                card = await self.deck_service.create_card(deck.id, card_request)
                for tag_name in card_bundle.tags:
                    if tag_name not in tag_ids:
                        tag_ids[tag_name] = (await self.deck_service.create_tag(deck.id, tag_name)).id
                    await self.deck_service.add_tag_to_card(card.id, tag_ids[tag_name])
        except KiokuError as e:
            logger.warning(f"Import of deck {deck.id} failed, removing it: {e.message}", extra={"deck_id": deck.id})
            await self.deck_service.delete_deck(deck.id)
            raise

        logger.info(f"Imported deck {deck.id} with {len(bundle.cards)} cards", extra={"deck_id": deck.id})
        return DeckImportResult(
            deck=await self.deck_service.get_deck(deck.id),
            cards_imported=len(bundle.cards)
        )

    async def export_deck(self, deck_id: str) -> str:
        deck = await self.deck_service.get_deck(deck_id)
        cards = await self.deck_service.list_cards(deck_id)
        bundle = DeckBundle(
            name=deck.name,
            description=deck.description,
            cards=[
                CardBundle(
                    front=card.front,
                    back=card.back,
                    front_type=card.front_type,
                    back_type=card.back_type,
                    front_language=card.front_language,
                    back_language=card.back_language,
                    notes=card.notes,
                    tags=[tag.name for tag in card.tags]
                )
                for card in cards
            ],
            exported_at=clock.utc_now()
        )
        return bundle.model_dump_json(by_alias=True, indent=2)

    async def import_quiz(self, ctx: SessionContext, content: str) -> QuizImportResult:
        bundle = _parse_bundle(QuizBundle, content)
        quiz_request = QuizCreate(
            name=bundle.name, description=bundle.description, shuffle_questions=bundle.shuffle_questions
        )
        question_requests = _build_requests(lambda: [
            QuestionCreate(
                choices=[ChoiceCreate(**choice.model_dump()) for choice in question.choices],
                **question.model_dump(exclude={"choices", "tags"})
            )
            for question in bundle.questions
        ])

        quiz = await self.quiz_service.create_quiz(ctx, quiz_request)
        try:
            tag_ids: Dict[str, str] = {}
            for question_bundle, question_request in zip(bundle.questions, question_requests):
                question = await self.quiz_service.create_question(quiz.id, question_request)
                for tag_name in question_bundle.tags:
                    if tag_name not in tag_ids:
                        tag_ids[tag_name] = (await self.quiz_service.create_tag(quiz.id, tag_name)).id
                    await self.quiz_service.add_tag_to_question(question.id, tag_ids[tag_name])
        except KiokuError as e:
            logger.warning(f"Import of quiz {quiz.id} failed, removing it: {e.message}", extra={"quiz_id": quiz.id})
            await self.quiz_service.delete_quiz(quiz.id)
            raise

        logger.info(f"Imported quiz {quiz.id} with {len(bundle.questions)} questions", extra={"quiz_id": quiz.id})
        return QuizImportResult(
            quiz=await self.quiz_service.get_quiz(quiz.id),
            questions_imported=len(bundle.questions)
        )

    async def export_quiz(self, quiz_id: str) -> str:
        quiz = await self.quiz_service.get_quiz(quiz_id)
        bundle = QuizBundle(
            name=quiz.name,
            description=quiz.description,
            shuffle_questions=quiz.shuffle_questions,
            questions=[
                QuestionBundle(
                    question_type=question.question_type,
                    content=question.content,
                    content_type=question.content_type,
                    content_language=question.content_language,
                    correct_answer=question.correct_answer,
                    multiple_answers=question.multiple_answers,
                    explanation=question.explanation,
                    choices=[ChoiceBundle(text=c.text, is_correct=c.is_correct) for c in question.choices],
                    tags=[tag.name for tag in question.tags]
                )
                for question in quiz.questions or []
            ],
            exported_at=clock.utc_now()
        )
        return bundle.model_dump_json(by_alias=True, indent=2)
