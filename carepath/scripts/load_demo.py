"""
Demo Scenario Loader

Loads pre-configured demo scenarios for consistent presentations.
Usage: python -m carepath.scripts.load_demo --scenario detox_switch
"""
import asyncio
import argparse
import random
from datetime import date, timedelta
from typing import List

from faker import Faker
from sqlalchemy import delete

from carepath.database import AsyncSessionLocal
from carepath.models import (
    Assessment,
    AssessmentAttempt,
    Category,
    CategoryEnrollment,
    ContentItem,
    Module,
    ModuleProgress,
    MoodEntry,
    Program,
    ProgramEnrollment,
    Question,
    QuestionOption,
    QuestionResponse,
    User,
)
from carepath.services.assessment_grader import Answer, AssessmentGrader
from carepath.services.catalog import CatalogService, OptionInput
from carepath.services.enrollment_manager import EnrollmentManager
from carepath.services.progress_tracker import ProgressTracker

fake = Faker()

# Child tables first so foreign keys never block the wipe
DEMO_TABLES = [
    QuestionResponse, AssessmentAttempt, MoodEntry, ModuleProgress, ProgramEnrollment,
    CategoryEnrollment, QuestionOption, Question, Assessment, ContentItem, Module, Program,
    Category, User,
]


async def clear_demo_data():
    """Clear all existing data"""
    async with AsyncSessionLocal() as session:
        for model in DEMO_TABLES:
            await session.execute(delete(model))
        await session.commit()
    print("✓ Cleared existing data")


async def create_users(session, patients: int) -> List[User]:
    """One admin followed by `patients` Faker patients."""
    users = [User(email="admin@carepath.example", first_name="Avery", last_name="Admin", role="admin")]
    for _ in range(patients):
        users.append(User(
            email=fake.unique.email(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            role="patient",
        ))
    session.add_all(users)
    await session.commit()
    return users


async def build_detox_catalog(catalog: CatalogService, admin_id):
    """Category with Detox-30 (3 modules, one optional) and Detox-60."""
    category = await catalog.create_category("Substance Recovery", "Structured detox programs")
    detox_30 = await catalog.create_program(
        "Detox-30", category.id, "Thirty day detox plan", duration_days=30, created_by=admin_id
    )
    detox_60 = await catalog.create_program(
        "Detox-60", category.id, "Sixty day detox plan", duration_days=60, created_by=admin_id
    )

    for title, required in (("Getting Started", True), ("Coping Skills", True), ("Further Reading", False)):
        module = await catalog.create_module(detox_30.id, title, is_required=required, created_by=admin_id)
        await catalog.create_content_item(
            module.id, f"{title} overview", "text", body=fake.paragraph(nb_sentences=4), created_by=admin_id
        )

    for title in ("Week One", "Week Two"):
        await catalog.create_module(detox_60.id, title, created_by=admin_id)

    return category, detox_30, detox_60


async def load_detox_switch_scenario():
    """
    Load Detox Switch scenario.

    Scenario: a patient starts Detox-30, completes a module, then is
    reassigned to Detox-60. Detox-30 ends dropped with its progress reset.
    """
    print("\nLoading Detox Switch scenario...")

    async with AsyncSessionLocal() as session:
        admin, patient = await create_users(session, patients=1)
        catalog = CatalogService(session)
        category, detox_30, detox_60 = await build_detox_catalog(catalog, admin.id)
        print(f"  Created category '{category.name}' with Detox-30 and Detox-60")

        enrollments = EnrollmentManager(session)
        await enrollments.assign_category(patient.id, category.id, date(2024, 1, 1), admin.id)
        first = await enrollments.assign(patient.id, detox_30.id, date(2024, 1, 1), admin.id)
        print(f"  Enrolled {patient.full_name} in Detox-30, expected end {first.expected_end_date}")

        modules = await catalog.list_modules(detox_30.id)
        await ProgressTracker(session).set_module_status(patient.id, modules[0].id, "completed", 600)
        print(f"  Completed module '{modules[0].title}'")

        second = await enrollments.assign(patient.id, detox_60.id, date(2024, 1, 15), admin.id)
        print(f"  Reassigned to Detox-60, expected end {second.expected_end_date}")
        print("  ✓ Detox Switch scenario loaded")
        print("  Expected: Detox-30 dropped with no progress rows, Detox-60 in progress")


async def load_assessment_scenario():
    """
    Load Assessment scenario.

    Scenario: a 10-point quiz (5 + 3 + 2) with 70% passing score, one
    passing and one failing attempt.
    """
    print("\nLoading Assessment scenario...")

    async with AsyncSessionLocal() as session:
        admin, passing, failing = await create_users(session, patients=2)
        catalog = CatalogService(session)
        category, detox_30, _ = await build_detox_catalog(catalog, admin.id)
        module = (await catalog.list_modules(detox_30.id))[0]

        assessment = await catalog.create_assessment(
            module.id, "Readiness Check", passing_score=70,
            description="Short check before moving on", created_by=admin.id,
        )
        questions = []
        for text, points in (("Cravings peak when?", 5), ("Who to call first?", 3), ("Best first step?", 2)):
            question = await catalog.create_question(
                assessment.id, text, "multiple_choice", points=points,
                options=[OptionInput("Right answer", True), OptionInput("Wrong answer", False)],
            )
            questions.append(question)
        print(f"  Created assessment '{assessment.title}' with {len(questions)} questions (10 points)")

        view = await AssessmentGrader(session).get_assessment_for_admin(assessment.id)
        right = {q["id"]: next(o["id"] for o in q["options"] if o["is_correct"]) for q in view["questions"]}
        wrong = {q["id"]: next(o["id"] for o in q["options"] if not o["is_correct"]) for q in view["questions"]}

        grader = AssessmentGrader(session)
        good = await grader.submit(passing.id, assessment.id, [
            Answer(q.id, selected_option_id=right[q.id]) for q in questions
        ])
        bad = await grader.submit(failing.id, assessment.id, [
            Answer(questions[0].id, selected_option_id=right[questions[0].id]),
            Answer(questions[1].id, selected_option_id=wrong[questions[1].id]),
            Answer(questions[2].id, selected_option_id=right[questions[2].id]),
        ])
        print(f"  {passing.full_name}: score {good.score}, passed={good.passed}")
        print(f"  {failing.full_name}: score {bad.score}, passed={bad.passed}")
        print("  ✓ Assessment scenario loaded")


async def load_cohort_scenario(patients: int = 25):
    """
    Load Cohort scenario.

    Scenario: Faker patients batch-enrolled across both detox programs with
    varied module progress, for dashboard demos.
    """
    print("\nLoading Cohort scenario...")

    async with AsyncSessionLocal() as session:
        users = await create_users(session, patients=patients)
        admin, cohort = users[0], users[1:]
        catalog = CatalogService(session)
        category, detox_30, detox_60 = await build_detox_catalog(catalog, admin.id)

        enrollments = EnrollmentManager(session)
        tracker = ProgressTracker(session)
        modules = await catalog.list_modules(detox_30.id)
        completed = 0

        for patient in cohort:
            start = date.today() - timedelta(days=random.randint(0, 29))
            targets = [detox_30.id] if random.random() < 0.6 else [detox_30.id, detox_60.id]
            await enrollments.enroll_multiple(patient.id, targets, category.id, start, admin.id)

            for module in modules[:random.randint(0, len(modules))]:
                await tracker.set_module_status(patient.id, module.id, "completed", random.randint(300, 3600))
            current = await tracker.resolve_enrollment(patient.id, detox_30.id)
            completed += current.status == "completed"

        print(f"  Enrolled {len(cohort)} patients, {completed} completed Detox-30")
        print("  ✓ Cohort scenario loaded")


async def load_scenario(scenario_name: str):
    """
    Load a demo scenario.

    Args:
        scenario_name: Name of scenario to load
    """
    scenarios = {
        "detox_switch": load_detox_switch_scenario,
        "assessment": load_assessment_scenario,
        "cohort": load_cohort_scenario,
    }

    if scenario_name not in scenarios:
        print(f"ERROR: Unknown scenario '{scenario_name}'")
        print(f"Available scenarios: {', '.join(scenarios.keys())}")
        return

    # Clear existing data
    await clear_demo_data()

    # Load scenario
    await scenarios[scenario_name]()

    print(f"\n✅ Scenario '{scenario_name}' loaded successfully!")
    print("Demo is ready for presentation")


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Load demo scenarios")
    parser.add_argument(
        "--scenario",
        "-s",
        choices=["detox_switch", "assessment", "cohort"],
        required=True,
        help="Scenario to load"
    )

    args = parser.parse_args()
    asyncio.run(load_scenario(args.scenario))


if __name__ == "__main__":
    main()
