"""
Assessment Grader

Scores a patient's answers against stored correct options and point values
and computes pass/fail against the assessment's passing score.

Attempt lifecycle: started -> completed. A new submission always creates a
new attempt; earlier attempts stay as history.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from carepath.errors import ForbiddenError, NotFoundError, PreconditionFailed, ValidationError
from carepath.models import (
    Assessment,
    AssessmentAttempt,
    CategoryEnrollment,
    ContentItem,
    Module,
    Program,
    Question,
    QuestionOption,
    QuestionResponse,
)
from carepath.models.assessment import CHOICE_QUESTION_TYPES
from carepath.models.enrollment import ACTIVE_ENROLLMENT_STATUSES
from carepath.services.base import BaseService

logger = logging.getLogger(__name__)


@dataclass
class Answer:
    """One submitted answer; the question type comes from the stored question"""
    question_id: UUID
    selected_option_id: Optional[UUID] = None
    text_response: Optional[str] = None


def total_possible_points(points: Iterable[int]) -> int:
    """Sum of question points, floored at 1 so scoring never divides by zero."""
    return max(sum(p or 0 for p in points), 1)


def score_percentage(earned_points: int, total_points: int) -> int:
    """round(100 * earned / total) with halves rounded up."""
    total_points = max(total_points, 1)
    return (200 * earned_points + total_points) // (2 * total_points)


def is_passing(score: int, passing_score: Optional[int]) -> bool:
    return score >= (passing_score or 0)


class AssessmentGrader(BaseService):
    """Attempt creation, per-answer grading and attempt finalization"""

    async def start_attempt(self, patient_id: UUID, assessment_id: UUID) -> AssessmentAttempt:
        await self.get_patient(patient_id)
        await self.get_or_404(Assessment, assessment_id, "Assessment")

        async with self.unit_of_work("attempt start"):
            attempt = await self._start_attempt(patient_id, assessment_id)
        return attempt

    async def grade_answer(self, attempt_id: UUID, answer: Answer) -> Optional[QuestionResponse]:
        """Grade and store a single answer on an open attempt."""
        attempt = await self._get_open_attempt(attempt_id)
        async with self.unit_of_work("answer grading"):
            response = await self._grade_answer(attempt, answer)
        return response

    async def finalize_attempt(self, attempt_id: UUID) -> AssessmentAttempt:
        attempt = await self._get_open_attempt(attempt_id)
        async with self.unit_of_work("attempt finalization"):
            await self._finalize(attempt)
        return attempt

    async def submit(self, patient_id: UUID, assessment_id: UUID, answers: Sequence[Answer]) -> AssessmentAttempt:
        """Start, grade every answer and finalize as one transaction."""
        if not answers:
            raise ValidationError.for_field("answers", "No answers provided")

        seen = set()
        for answer in answers:
            if answer.question_id in seen:
                raise ValidationError.for_field("answers", f"Question {answer.question_id} answered more than once")
            seen.add(answer.question_id)

        await self.get_patient(patient_id)
        await self.get_or_404(Assessment, assessment_id, "Assessment")

        async with self.unit_of_work("assessment submission"):
            attempt = await self._start_attempt(patient_id, assessment_id)
            for answer in answers:
                await self._grade_answer(attempt, answer)
            await self._finalize(attempt)

            self.cache.mark("/patient/assessments", f"/patient/assessments/{assessment_id}")

        logger.info(
            f"Patient {patient_id} submitted assessment {assessment_id}: "
            f"score={attempt.score} passed={attempt.passed}"
        )
        return attempt

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def get_assessment_for_patient(self, assessment_id: UUID) -> Dict[str, Any]:
        """Assessment with ordered questions and options, correct flags stripped."""
        return await self._assessment_view(assessment_id, reveal_answers=False)

    async def get_assessment_for_admin(self, assessment_id: UUID) -> Dict[str, Any]:
        return await self._assessment_view(assessment_id, reveal_answers=True)

    async def get_attempt_review(self, attempt_id: UUID, patient_id: UUID) -> Dict[str, Any]:
        """Graded view of a completed attempt, including which options were correct."""
        attempt = await self.get_or_404(AssessmentAttempt, attempt_id, "Attempt")
        if attempt.patient_id != patient_id:
            raise ForbiddenError("This attempt belongs to another patient")
        if not attempt.is_completed:
            raise PreconditionFailed("Attempt review is available once the attempt is completed")

        view = await self._assessment_view(attempt.assessment_id, reveal_answers=True)
        responses = (await self.session.execute(
            select(QuestionResponse).where(QuestionResponse.attempt_id == attempt.id)
        )).scalars().all()
        by_question = {r.question_id: r for r in responses}

        for question in view["questions"]:
            response = by_question.get(question["id"])
            question["response"] = None if response is None else {
                "selected_option_id": response.selected_option_id,
                "text_response": response.text_response,
                "is_correct": response.is_correct,
                "points_earned": response.points_earned,
                "grading_status": response.grading_status,
            }

        view["attempt"] = {
            "id": attempt.id,
            "started_at": attempt.started_at,
            "completed_at": attempt.completed_at,
            "score": attempt.score,
            "passed": attempt.passed,
        }
        return view

    async def list_patient_assessments(
        self, patient_id: UUID, category_id: Optional[UUID] = None
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Assessments of the patient's category, split by the latest attempt.

        category_id defaults to the patient's active category assignment; a
        category the patient is not assigned to is refused.
        """
        assigned = (await self.session.execute(
            select(CategoryEnrollment.category_id).where(
                CategoryEnrollment.patient_id == patient_id,
                CategoryEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
        )).scalars().first()
        if category_id is None:
            category_id = assigned
            if category_id is None:
                return {"available": [], "completed": []}
        elif category_id != assigned:
            raise ForbiddenError("You are not assigned to this category")

        rows = (await self.session.execute(
            select(Assessment, ContentItem, Module, Program)
            .join(ContentItem, ContentItem.id == Assessment.content_item_id)
            .join(Module, Module.id == ContentItem.module_id)
            .join(Program, Program.id == Module.program_id)
            .where(
                Program.category_id == category_id,
                Program.is_active.is_(True),
                ContentItem.content_type == "assessment",
            )
            .order_by(Program.title, Module.sequence_number, ContentItem.sequence_number)
        )).all()

        attempts = (await self.session.execute(
            select(AssessmentAttempt)
            .where(AssessmentAttempt.patient_id == patient_id)
            .order_by(AssessmentAttempt.started_at.desc())
        )).scalars().all()
        latest: Dict[UUID, AssessmentAttempt] = {}
        for attempt in attempts:
            latest.setdefault(attempt.assessment_id, attempt)

        available, completed = [], []
        for assessment, content_item, module, program in rows:
            attempt = latest.get(assessment.id)
            entry = {
                "id": assessment.id,
                "title": assessment.title,
                "description": assessment.description,
                "passing_score": assessment.passing_score,
                "time_limit_minutes": assessment.time_limit_minutes,
                "content_item_id": content_item.id,
                "module_id": module.id,
                "module_title": module.title,
                "program_id": program.id,
                "program_title": program.title,
                "latest_attempt": None if attempt is None else {
                    "id": attempt.id,
                    "started_at": attempt.started_at,
                    "completed_at": attempt.completed_at,
                    "score": attempt.score,
                    "passed": attempt.passed,
                },
            }
            if attempt is not None and attempt.is_completed:
                completed.append(entry)
            else:
                available.append(entry)

        return {"available": available, "completed": completed}

    # ------------------------------------------------------------------
    # Internals (no commits)
    # ------------------------------------------------------------------

    async def _start_attempt(self, patient_id: UUID, assessment_id: UUID) -> AssessmentAttempt:
        attempt = AssessmentAttempt(
            patient_id=patient_id,
            assessment_id=assessment_id,
            started_at=datetime.now(timezone.utc),
        )
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def _get_open_attempt(self, attempt_id: UUID) -> AssessmentAttempt:
        attempt = await self.get_or_404(AssessmentAttempt, attempt_id, "Attempt")
        if attempt.is_completed:
            raise PreconditionFailed("Attempt has already been completed")
        return attempt

    async def _grade_answer(self, attempt: AssessmentAttempt, answer: Answer) -> Optional[QuestionResponse]:
        question = await self.session.get(Question, answer.question_id)
        if question is None or question.assessment_id != attempt.assessment_id:
            raise ValidationError.for_field(
                "question_id", f"Question {answer.question_id} does not belong to this assessment"
            )

        if question.question_type in CHOICE_QUESTION_TYPES:
            if answer.selected_option_id is None:
                logger.warning(f"Skipping {question.question_type} answer to {question.id} with no selected option")
                return None

            options = (await self.session.execute(
                select(QuestionOption).where(QuestionOption.question_id == question.id)
            )).scalars().all()
            if answer.selected_option_id not in {o.id for o in options}:
                raise ValidationError.for_field(
                    "selected_option_id", f"Option does not belong to question {question.id}"
                )

            correct_ids = {o.id for o in options if o.is_correct}
            is_correct = answer.selected_option_id in correct_ids
            response = QuestionResponse(
                attempt_id=attempt.id,
                question_id=question.id,
                selected_option_id=answer.selected_option_id,
                is_correct=is_correct,
                points_earned=question.points if is_correct else 0,
                grading_status="graded",
            )
        else:
            # Free text is never auto-graded
            response = QuestionResponse(
                attempt_id=attempt.id,
                question_id=question.id,
                text_response=answer.text_response or "",
                is_correct=None,
                points_earned=0,
                grading_status="pending_review",
            )

        self.session.add(response)
        await self.session.flush()
        return response

    async def _finalize(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        assessment = await self.get_or_404(Assessment, attempt.assessment_id, "Assessment")

        earned = (await self.session.execute(
            select(func.coalesce(func.sum(QuestionResponse.points_earned), 0)).where(
                QuestionResponse.attempt_id == attempt.id,
                QuestionResponse.is_correct.is_not(None),
            )
        )).scalar()
        points = (await self.session.execute(
            select(Question.points).where(Question.assessment_id == assessment.id)
        )).scalars().all()

        total = total_possible_points(points)
        score = score_percentage(earned, total)

        attempt.completed_at = datetime.now(timezone.utc)
        attempt.score = score
        attempt.passed = is_passing(score, assessment.passing_score)
        await self.session.flush()

        logger.debug(f"Attempt {attempt.id}: {earned}/{total} points -> {score}%")
        return attempt

    async def _assessment_view(self, assessment_id: UUID, reveal_answers: bool) -> Dict[str, Any]:
        assessment = await self.session.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment")

        questions = (await self.session.execute(
            select(Question).where(Question.assessment_id == assessment_id).order_by(Question.sequence_number)
        )).scalars().all()
        question_ids = [q.id for q in questions]
        options = (await self.session.execute(
            select(QuestionOption)
            .where(QuestionOption.question_id.in_(question_ids))
            .order_by(QuestionOption.sequence_number)
        )).scalars().all() if question_ids else []

        options_by_question: Dict[UUID, List[Dict[str, Any]]] = {qid: [] for qid in question_ids}
        for option in options:
            projected = {
                "id": option.id,
                "option_text": option.option_text,
                "sequence_number": option.sequence_number,
            }
            if reveal_answers:
                projected["is_correct"] = option.is_correct
            options_by_question[option.question_id].append(projected)

        return {
            "id": assessment.id,
            "content_item_id": assessment.content_item_id,
            "title": assessment.title,
            "description": assessment.description,
            "passing_score": assessment.passing_score,
            "time_limit_minutes": assessment.time_limit_minutes,
            "questions": [
                {
                    "id": q.id,
                    "question_text": q.question_text,
                    "question_type": q.question_type,
                    "points": q.points,
                    "sequence_number": q.sequence_number,
                    "options": options_by_question[q.id],
                }
                for q in questions
            ],
        }
