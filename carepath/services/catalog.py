"""
Catalog Service

Admin-side management of categories, programs, modules, content items,
assessments and questions. Every sibling insert, move and delete goes
through the Sequencer so orderings stay dense.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, exists, func, select

from carepath.errors import PreconditionFailed, ValidationError
from carepath.models import (
    Assessment,
    AssessmentAttempt,
    Category,
    ContentItem,
    Module,
    ModuleProgress,
    Program,
    ProgramEnrollment,
    Question,
    QuestionOption,
    QuestionResponse,
)
from carepath.models.assessment import CHOICE_QUESTION_TYPES, QUESTION_TYPES
from carepath.services.base import BaseService
from carepath.services.sequencer import CONTENT_ITEMS, MODULES, QUESTIONS, Sequencer

logger = logging.getLogger(__name__)

# JSON key holding the URL for each structured content type
URL_CONTENT_KEYS = {
    "video": "videoUrl",
    "document": "documentUrl",
    "link": "linkUrl",
}

PROGRAM_FIELDS = ("title", "description", "category_id", "duration_days", "is_self_paced", "is_active")
MODULE_FIELDS = ("title", "description", "estimated_minutes", "is_required")
ASSESSMENT_FIELDS = ("title", "description", "passing_score", "time_limit_minutes")


@dataclass
class OptionInput:
    option_text: str
    is_correct: bool = False


def validate_question_options(question_type: str, options: Sequence[OptionInput]) -> Dict[str, List[str]]:
    """Field errors for a question's option set; empty when valid."""
    errors: Dict[str, List[str]] = {}
    if question_type not in QUESTION_TYPES:
        errors["question_type"] = [f"Question type must be one of: {', '.join(QUESTION_TYPES)}"]
        return errors

    if question_type not in CHOICE_QUESTION_TYPES:
        if options:
            errors["options"] = ["Text response questions do not take options"]
        return errors

    messages = []
    if question_type == "true_false" and len(options) != 2:
        messages.append("True/false questions need exactly two options")
    if question_type == "multiple_choice" and len(options) < 2:
        messages.append("Multiple choice questions need at least two options")
    if not any(o.is_correct for o in options):
        messages.append("At least one option must be marked correct")
    if any(not (o.option_text or "").strip() for o in options):
        messages.append("Option text cannot be empty")
    if messages:
        errors["options"] = messages
    return errors


def encode_content(
    content_type: str,
    body: Optional[str] = None,
    url: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """Serialize content for storage: raw text, or JSON for URL-backed types."""
    if content_type == "text":
        if not (body or "").strip():
            raise ValidationError.for_field("body", "Required")
        return body
    if content_type in URL_CONTENT_KEYS:
        if not url:
            raise ValidationError.for_field("url", "Required")
        return json.dumps({URL_CONTENT_KEYS[content_type]: url, "description": description or ""})
    raise ValidationError.for_field(
        "content_type", f"Content type must be one of: text, {', '.join(URL_CONTENT_KEYS)}"
    )


def decode_content(content_type: str, content: str) -> Any:
    if content_type == "text":
        return content
    try:
        return json.loads(content or "{}")
    except ValueError:
        logger.warning(f"Stored {content_type} content is not valid JSON")
        return {"raw": content}


class CatalogService(BaseService):
    """Programs, modules, content and assessments as authored by admins"""

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def create_category(self, name: str, description: Optional[str] = None) -> Category:
        await self._ensure_category_name_free(name)
        async with self.unit_of_work("category creation"):
            category = Category(name=name.strip(), description=description)
            self.session.add(category)
            await self.session.flush()
            self.cache.mark("/admin/categories")
        logger.info(f"Created category {category.id} ({category.name})")
        return category

    async def update_category(
        self, category_id: UUID, name: Optional[str] = None, description: Optional[str] = None
    ) -> Category:
        category = await self.get_or_404(Category, category_id, "Category")
        if name is not None and name.strip() != category.name:
            await self._ensure_category_name_free(name)
        async with self.unit_of_work("category update"):
            if name is not None:
                category.name = name.strip()
            if description is not None:
                category.description = description
            await self.session.flush()
            self.cache.mark("/admin/categories")
        return category

    async def list_categories(self) -> List[Category]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Programs
    # ------------------------------------------------------------------

    async def create_program(
        self,
        title: str,
        category_id: UUID,
        description: Optional[str] = None,
        duration_days: Optional[int] = None,
        is_self_paced: bool = False,
        created_by: Optional[UUID] = None,
    ) -> Program:
        await self.get_or_404(Category, category_id, "Category")
        self._check_duration(duration_days)

        async with self.unit_of_work("program creation"):
            program = Program(
                title=title,
                description=description,
                category_id=category_id,
                duration_days=duration_days,
                is_self_paced=is_self_paced,
                is_active=True,
                created_by=created_by,
            )
            self.session.add(program)
            await self.session.flush()
            self.cache.mark("/admin/programs")

        logger.info(f"Created program {program.id} ({title}) in category {category_id}")
        return program

    async def update_program(self, program_id: UUID, **changes) -> Program:
        program = await self.get_or_404(Program, program_id, "Program")
        unknown = set(changes) - set(PROGRAM_FIELDS)
        if unknown:
            raise ValidationError.for_field(sorted(unknown)[0], "Unknown program field")
        if "duration_days" in changes:
            self._check_duration(changes["duration_days"])
        if changes.get("category_id") is not None:
            await self.get_or_404(Category, changes["category_id"], "Category")

        async with self.unit_of_work("program update"):
            for name, value in changes.items():
                setattr(program, name, value)
            await self.session.flush()
            self.cache.mark("/admin/programs", f"/admin/programs/{program_id}")
        return program

    async def set_program_active(self, program_id: UUID, is_active: bool) -> Program:
        return await self.update_program(program_id, is_active=is_active)

    async def delete_program(self, program_id: UUID) -> None:
        program = await self.get_or_404(Program, program_id, "Program")
        if await self._exists(ProgramEnrollment.program_id == program_id):
            raise PreconditionFailed("Cannot delete a program that has enrollments")
        if await self._exists(Module.program_id == program_id):
            raise PreconditionFailed("Cannot delete a program that still has modules")

        async with self.unit_of_work("program deletion"):
            await self.session.delete(program)
            await self.session.flush()
            self.cache.mark("/admin/programs")
        logger.info(f"Deleted program {program_id}")

    async def get_program(self, program_id: UUID) -> Program:
        return await self.get_or_404(Program, program_id, "Program")

    async def list_programs(self, category_id: Optional[UUID] = None, active_only: bool = False) -> List[Program]:
        query = select(Program).order_by(Program.title)
        if category_id is not None:
            query = query.where(Program.category_id == category_id)
        if active_only:
            query = query.where(Program.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def create_module(
        self,
        program_id: UUID,
        title: str,
        description: Optional[str] = None,
        estimated_minutes: Optional[int] = None,
        is_required: bool = True,
        sequence_number: Optional[int] = None,
        created_by: Optional[UUID] = None,
    ) -> Module:
        """Append a module to the program, optionally moving it to sequence_number."""
        await self.get_or_404(Program, program_id, "Program")
        sequencer = Sequencer(self.session, MODULES)

        async with self.unit_of_work("module creation"):
            module = Module(
                program_id=program_id,
                title=title,
                description=description,
                estimated_minutes=estimated_minutes,
                is_required=is_required,
                sequence_number=await sequencer.next_sequence(program_id),
                created_by=created_by,
            )
            self.session.add(module)
            await self.session.flush()
            if sequence_number is not None:
                await sequencer.reorder(module.id, sequence_number)
            self.cache.mark(f"/admin/programs/{program_id}", f"/admin/programs/{program_id}/modules")

        logger.info(f"Created module {module.id} at position {module.sequence_number} in program {program_id}")
        return module

    async def update_module(self, module_id: UUID, sequence_number: Optional[int] = None, **changes) -> Module:
        module = await self.get_or_404(Module, module_id, "Module")
        unknown = set(changes) - set(MODULE_FIELDS)
        if unknown:
            raise ValidationError.for_field(sorted(unknown)[0], "Unknown module field")

        async with self.unit_of_work("module update"):
            for name, value in changes.items():
                setattr(module, name, value)
            await self.session.flush()
            if sequence_number is not None:
                await Sequencer(self.session, MODULES).reorder(module.id, sequence_number)
            self._mark_program_paths(module.program_id)
        return module

    async def reorder_module(self, module_id: UUID, new_position: int, program_id: Optional[UUID] = None) -> int:
        async with self.unit_of_work("module reorder"):
            position = await Sequencer(self.session, MODULES).reorder(module_id, new_position, program_id)
            module = await self.session.get(Module, module_id)
            self._mark_program_paths(module.program_id)
        return position

    async def delete_module(self, module_id: UUID) -> None:
        module = await self.get_or_404(Module, module_id, "Module")
        if await self._exists(ContentItem.module_id == module_id):
            raise PreconditionFailed("Cannot delete a module that still has content items")

        program_id = module.program_id
        async with self.unit_of_work("module deletion"):
            await self.session.execute(
                delete(ModuleProgress)
                .where(ModuleProgress.module_id == module_id)
                .execution_options(synchronize_session="fetch")
            )
            await self.session.delete(module)
            await self.session.flush()
            await Sequencer(self.session, MODULES).close_gap(program_id)
            self._mark_program_paths(program_id)
        logger.info(f"Deleted module {module_id} from program {program_id}")

    async def list_modules(self, program_id: UUID) -> List[Module]:
        await self.get_or_404(Program, program_id, "Program")
        result = await self.session.execute(
            select(Module).where(Module.program_id == program_id).order_by(Module.sequence_number)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    async def create_content_item(
        self,
        module_id: UUID,
        title: str,
        content_type: str,
        body: Optional[str] = None,
        url: Optional[str] = None,
        description: Optional[str] = None,
        created_by: Optional[UUID] = None,
    ) -> ContentItem:
        """Append a text, video, document or link item to a module."""
        module = await self.get_or_404(Module, module_id, "Module")
        content = encode_content(content_type, body=body, url=url, description=description)
        sequencer = Sequencer(self.session, CONTENT_ITEMS)

        async with self.unit_of_work("content creation"):
            item = ContentItem(
                module_id=module_id,
                title=title,
                content_type=content_type,
                content=content,
                sequence_number=await sequencer.next_sequence(module_id),
                created_by=created_by,
            )
            self.session.add(item)
            await self.session.flush()
            self._mark_module_paths(module)

        logger.info(f"Created {content_type} content {item.id} in module {module_id}")
        return item

    async def update_content_item(
        self,
        item_id: UUID,
        title: Optional[str] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ContentItem:
        item = await self.get_or_404(ContentItem, item_id, "Content item")
        if item.content_type == "assessment":
            raise ValidationError.for_field("content_type", "Assessment content is edited through its assessment")

        content = None
        if body is not None or url is not None or description is not None:
            current = decode_content(item.content_type, item.content)
            if item.content_type != "text":
                url = url if url is not None else current.get(URL_CONTENT_KEYS[item.content_type])
                description = description if description is not None else current.get("description")
            content = encode_content(item.content_type, body=body, url=url, description=description)

        module = await self.get_or_404(Module, item.module_id, "Module")
        async with self.unit_of_work("content update"):
            if title is not None:
                item.title = title
            if content is not None:
                item.content = content
            await self.session.flush()
            self._mark_module_paths(module)
        return item

    async def reorder_content_item(self, item_id: UUID, new_position: int, module_id: Optional[UUID] = None) -> int:
        async with self.unit_of_work("content reorder"):
            position = await Sequencer(self.session, CONTENT_ITEMS).reorder(item_id, new_position, module_id)
            item = await self.session.get(ContentItem, item_id)
            module = await self.session.get(Module, item.module_id)
            self._mark_module_paths(module)
        return position

    async def delete_content_item(self, item_id: UUID) -> None:
        """Delete a content item; an attached assessment goes too unless it has attempts."""
        item = await self.get_or_404(ContentItem, item_id, "Content item")
        assessment = (await self.session.execute(
            select(Assessment).where(Assessment.content_item_id == item_id)
        )).scalar_one_or_none()
        if assessment is not None and await self._exists(
            AssessmentAttempt.assessment_id == assessment.id
        ):
            raise PreconditionFailed("Cannot delete an assessment that patients have attempted")

        module = await self.get_or_404(Module, item.module_id, "Module")
        async with self.unit_of_work("content deletion"):
            if assessment is not None:
                await self._delete_assessment_tree(assessment)
            await self.session.delete(item)
            await self.session.flush()
            await Sequencer(self.session, CONTENT_ITEMS).close_gap(module.id)
            self._mark_module_paths(module)
        logger.info(f"Deleted content item {item_id} from module {module.id}")

    async def list_content_items(self, module_id: UUID) -> List[Dict[str, Any]]:
        await self.get_or_404(Module, module_id, "Module")
        rows = (await self.session.execute(
            select(ContentItem, Assessment.id)
            .outerjoin(Assessment, Assessment.content_item_id == ContentItem.id)
            .where(ContentItem.module_id == module_id)
            .order_by(ContentItem.sequence_number)
        )).all()
        return [
            {
                "id": item.id,
                "module_id": item.module_id,
                "title": item.title,
                "content_type": item.content_type,
                "content": decode_content(item.content_type, item.content),
                "sequence_number": item.sequence_number,
                "assessment_id": assessment_id,
            }
            for item, assessment_id in rows
        ]

    # ------------------------------------------------------------------
    # Assessments
    # ------------------------------------------------------------------

    async def create_assessment(
        self,
        module_id: UUID,
        title: str,
        passing_score: int,
        description: Optional[str] = None,
        instructions: Optional[str] = None,
        time_limit_minutes: Optional[int] = None,
        created_by: Optional[UUID] = None,
    ) -> Assessment:
        """Create the assessment content item and its assessment together."""
        module = await self.get_or_404(Module, module_id, "Module")
        self._check_passing_score(passing_score)
        sequencer = Sequencer(self.session, CONTENT_ITEMS)

        async with self.unit_of_work("assessment creation"):
            item = ContentItem(
                module_id=module_id,
                title=title,
                content_type="assessment",
                content=json.dumps({"description": description or "", "instructions": instructions or ""}),
                sequence_number=await sequencer.next_sequence(module_id),
                created_by=created_by,
            )
            self.session.add(item)
            await self.session.flush()

            assessment = Assessment(
                content_item_id=item.id,
                title=title,
                description=description,
                passing_score=passing_score,
                time_limit_minutes=time_limit_minutes,
                created_by=created_by,
            )
            self.session.add(assessment)
            await self.session.flush()
            self._mark_module_paths(module)

        logger.info(f"Created assessment {assessment.id} (content item {item.id}) in module {module_id}")
        return assessment

    async def update_assessment(self, assessment_id: UUID, **changes) -> Assessment:
        assessment = await self.get_or_404(Assessment, assessment_id, "Assessment")
        unknown = set(changes) - set(ASSESSMENT_FIELDS)
        if unknown:
            raise ValidationError.for_field(sorted(unknown)[0], "Unknown assessment field")
        if "passing_score" in changes:
            self._check_passing_score(changes["passing_score"])

        async with self.unit_of_work("assessment update"):
            for name, value in changes.items():
                setattr(assessment, name, value)
            if "title" in changes:
                item = await self.session.get(ContentItem, assessment.content_item_id)
                item.title = changes["title"]
            await self.session.flush()
            self.cache.mark(f"/admin/assessments/{assessment_id}", f"/patient/assessments/{assessment_id}")
        return assessment

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def create_question(
        self,
        assessment_id: UUID,
        question_text: str,
        question_type: str,
        points: int = 1,
        options: Sequence[OptionInput] = (),
    ) -> Question:
        await self.get_or_404(Assessment, assessment_id, "Assessment")
        self._check_question(question_type, points, options)
        sequencer = Sequencer(self.session, QUESTIONS)

        async with self.unit_of_work("question creation"):
            question = Question(
                assessment_id=assessment_id,
                question_text=question_text,
                question_type=question_type,
                points=points,
                sequence_number=await sequencer.next_sequence(assessment_id),
            )
            self.session.add(question)
            await self.session.flush()
            self._add_options(question.id, options)
            await self.session.flush()
            self._mark_assessment_paths(assessment_id)

        logger.info(f"Created {question_type} question {question.id} in assessment {assessment_id}")
        return question

    async def update_question(
        self,
        question_id: UUID,
        question_text: Optional[str] = None,
        question_type: Optional[str] = None,
        points: Optional[int] = None,
        options: Optional[Sequence[OptionInput]] = None,
    ) -> Question:
        """Update a question; a given option list replaces the stored options."""
        question = await self.get_or_404(Question, question_id, "Question")
        new_type = question_type or question.question_type
        new_points = points if points is not None else question.points

        if options is None and new_type != question.question_type:
            raise ValidationError.for_field("options", "Changing the question type requires a new option list")
        if options is not None:
            self._check_question(new_type, new_points, options)
        elif new_points < 1:
            raise ValidationError.for_field("points", "Points must be at least 1")
        if options is not None and await self._exists(QuestionResponse.question_id == question_id):
            raise PreconditionFailed("Cannot replace options of a question that has responses")

        async with self.unit_of_work("question update"):
            if question_text is not None:
                question.question_text = question_text
            question.question_type = new_type
            question.points = new_points
            if options is not None:
                await self.session.execute(
                    delete(QuestionOption)
                    .where(QuestionOption.question_id == question_id)
                    .execution_options(synchronize_session="fetch")
                )
                self._add_options(question_id, options)
            await self.session.flush()
            self._mark_assessment_paths(question.assessment_id)
        return question

    async def reorder_question(self, question_id: UUID, new_position: int, assessment_id: Optional[UUID] = None) -> int:
        async with self.unit_of_work("question reorder"):
            position = await Sequencer(self.session, QUESTIONS).reorder(question_id, new_position, assessment_id)
            question = await self.session.get(Question, question_id)
            self._mark_assessment_paths(question.assessment_id)
        return position

    async def delete_question(self, question_id: UUID) -> None:
        question = await self.get_or_404(Question, question_id, "Question")
        if await self._exists(QuestionResponse.question_id == question_id):
            raise PreconditionFailed("Cannot delete a question that has recorded responses")

        assessment_id = question.assessment_id
        async with self.unit_of_work("question deletion"):
            await self.session.execute(
                delete(QuestionOption)
                .where(QuestionOption.question_id == question_id)
                .execution_options(synchronize_session="fetch")
            )
            await self.session.delete(question)
            await self.session.flush()
            await Sequencer(self.session, QUESTIONS).close_gap(assessment_id)
            self._mark_assessment_paths(assessment_id)
        logger.info(f"Deleted question {question_id} from assessment {assessment_id}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _exists(self, *criteria) -> bool:
        result = await self.session.execute(select(exists().where(*criteria)))
        return bool(result.scalar())

    async def _ensure_category_name_free(self, name: str) -> None:
        if not (name or "").strip():
            raise ValidationError.for_field("name", "Required")
        taken = await self.session.execute(
            select(func.count()).select_from(Category).where(func.lower(Category.name) == name.strip().lower())
        )
        if taken.scalar():
            raise ValidationError.for_field("name", f"A category named {name.strip()} already exists")

    async def _delete_assessment_tree(self, assessment: Assessment) -> None:
        question_ids = select(Question.id).where(Question.assessment_id == assessment.id)
        await self.session.execute(
            delete(QuestionOption)
            .where(QuestionOption.question_id.in_(question_ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(
            delete(Question)
            .where(Question.assessment_id == assessment.id)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.delete(assessment)
        await self.session.flush()

    def _add_options(self, question_id: UUID, options: Sequence[OptionInput]) -> None:
        for position, option in enumerate(options, start=1):
            self.session.add(QuestionOption(
                question_id=question_id,
                option_text=option.option_text,
                is_correct=bool(option.is_correct),
                sequence_number=position,
            ))

    @staticmethod
    def _check_question(question_type: str, points: int, options: Sequence[OptionInput]) -> None:
        errors = validate_question_options(question_type, options)
        if points is None or points < 1:
            errors["points"] = ["Points must be at least 1"]
        if errors:
            raise ValidationError(details=errors)

    @staticmethod
    def _check_duration(duration_days: Optional[int]) -> None:
        if duration_days is not None and duration_days <= 0:
            raise ValidationError.for_field("duration_days", "Duration must be a positive number of days")

    @staticmethod
    def _check_passing_score(passing_score: int) -> None:
        if passing_score is None or not 0 <= passing_score <= 100:
            raise ValidationError.for_field("passing_score", "Passing score must be between 0 and 100")

    def _mark_program_paths(self, program_id: UUID) -> None:
        self.cache.mark(f"/admin/programs/{program_id}", f"/admin/programs/{program_id}/modules")

    def _mark_module_paths(self, module: Module) -> None:
        self.cache.mark(f"/admin/programs/{module.program_id}/modules/{module.id}")

    def _mark_assessment_paths(self, assessment_id: UUID) -> None:
        self.cache.mark(f"/admin/assessments/{assessment_id}", f"/patient/assessments/{assessment_id}")
