"""SQLAlchemy ORM Models for CarePath Database Schema"""
from carepath.models.user import User
from carepath.models.category import Category
from carepath.models.program import Program
from carepath.models.module import Module
from carepath.models.content_item import ContentItem
from carepath.models.assessment import Assessment, Question, QuestionOption
from carepath.models.enrollment import CategoryEnrollment, ProgramEnrollment
from carepath.models.module_progress import ModuleProgress
from carepath.models.assessment_attempt import AssessmentAttempt, QuestionResponse
from carepath.models.mood_entry import MoodEntry

__all__ = [
    "User",
    "Category",
    "Program",
    "Module",
    "ContentItem",
    "Assessment",
    "Question",
    "QuestionOption",
    "CategoryEnrollment",
    "ProgramEnrollment",
    "ModuleProgress",
    "AssessmentAttempt",
    "QuestionResponse",
    "MoodEntry",
]
