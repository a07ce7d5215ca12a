"""Seed the database with a demo university, accounts, courses, and reviews.

Run from the backend directory:
    python -m scripts.seed_data
"""

import asyncio
from datetime import timedelta

from sqlalchemy import delete, select

from course_review.auth.passwords import hash_password
from course_review.database import async_session_factory, utcnow
from course_review.models.course import Course
from course_review.models.review import Review, ReviewVote
from course_review.models.university import University
from course_review.models.usage import UsageCounter
from course_review.models.user import User
from course_review.services.course_service import recompute_aggregates

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

UNIVERSITY = {"name": "Keio University", "short_name": "Keio", "location": "Tokyo, Japan"}

ADMIN_USER = {
    "email": "admin@course-review.dev",
    "password": "admin1234",
    "display_name": "Site Admin",
}

STUDENTS = [
    {
        "email": "hana@course-review.dev",
        "password": "student1234",
        "display_name": "Hana",
        "admission_year": 2022,
        "department": "Economics",
        "faculty": "Faculty of Economics",
    },
    {
        "email": "ren@course-review.dev",
        "password": "student1234",
        "display_name": "Ren",
        "admission_year": 2023,
        "department": "Law",
        "faculty": "Faculty of Law",
    },
    {
        "email": "mika@course-review.dev",
        "password": "student1234",
        "display_name": "Mika",
        "admission_year": 2021,
        "department": "Environment and Information Studies",
        "faculty": "Faculty of Environment and Information Studies",
    },
]

COURSES = [
    {
        "course_code": "ECON101",
        "name": "Principles of Microeconomics",
        "instructor": "Tanaka Hiroshi",
        "department": "Economics",
        "faculty": "Faculty of Economics",
        "category": "required",
        "semester": "spring",
        "year": 2026,
        "credits": 2,
        "description": "Consumer choice, firm behaviour, and market equilibrium.",
    },
    {
        "course_code": "ECON215",
        "name": "Econometrics I",
        "instructor": "Suzuki Aya",
        "department": "Economics",
        "faculty": "Faculty of Economics",
        "category": "elective",
        "semester": "fall",
        "year": 2026,
        "credits": 4,
        "description": "Linear regression, inference, and applied data work in R.",
    },
    {
        "course_code": "LAW110",
        "name": "Introduction to Constitutional Law",
        "instructor": "Yamamoto Ken",
        "department": "Law",
        "faculty": "Faculty of Law",
        "category": "required",
        "semester": "spring",
        "year": 2026,
        "credits": 2,
    },
    {
        "course_code": "SFC300",
        "name": "Human-Computer Interaction Studio",
        "instructor": "Nakamura Yui",
        "department": "Environment and Information Studies",
        "faculty": "Faculty of Environment and Information Studies",
        "category": "elective",
        "semester": "full_year",
        "year": 2026,
        "credits": 4,
        "syllabus_url": "https://example.edu/syllabus/sfc300",
    },
    {
        "course_code": "GEN050",
        "name": "Japanese Tea Ceremony",
        "instructor": "Kobayashi Emi",
        "department": "General Education",
        "category": "free",
        "semester": "intensive",
        "year": 2026,
        "credits": 1,
    },
]

# (student index, course code, overall, difficulty, workload, content)
REVIEWS = [
    (0, "ECON101", 4, 2, 2, "Clear lectures and fair weekly quizzes. Good first economics course."),
    (1, "ECON101", 3, 3, 2, "Solid material but the textbook does most of the teaching."),
    (2, "ECON101", 5, 2, 1, "Professor Tanaka explains intuition before the math, which helps a lot."),
    (0, "ECON215", 4, 4, 5, "Heavy problem sets, but you come out able to run real regressions."),
    (1, "LAW110", 5, 3, 3, "Engaging case discussions. Attendance matters for participation points."),
    (2, "SFC300", 4, 3, 4, "Studio format with a group project every term. Great feedback sessions."),
]


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def _reset(session) -> None:
    """Remove data created by a previous seed run."""
    emails = [ADMIN_USER["email"], *(s["email"] for s in STUDENTS)]
    result = await session.execute(select(User.id).where(User.email.in_(emails)))
    user_ids = list(result.scalars().all())

    university = (
        await session.execute(select(University).where(University.name == UNIVERSITY["name"]))
    ).scalar_one_or_none()
    if university is not None:
        course_ids = select(Course.id).where(Course.university_id == university.id)
        review_ids = select(Review.id).where(Review.course_id.in_(course_ids))
        await session.execute(delete(ReviewVote).where(ReviewVote.review_id.in_(review_ids)))
        await session.execute(delete(Review).where(Review.course_id.in_(course_ids)))
        await session.execute(delete(Course).where(Course.university_id == university.id))
        await session.execute(delete(University).where(University.id == university.id))

    if user_ids:
        await session.execute(delete(UsageCounter).where(UsageCounter.user_id.in_(user_ids)))
        await session.execute(delete(User).where(User.id.in_(user_ids)))
    await session.flush()


async def seed() -> None:
    """Populate the database with demo data.

    Idempotent: data from an earlier run is deleted and re-created.
    """
    async with async_session_factory() as session:
        await _reset(session)

        # 1. University
        university = University(**UNIVERSITY)
        session.add(university)
        await session.flush()
        print(f"✅ Created university: {university.name}")

        # 2. Accounts
        admin = User(
            email=ADMIN_USER["email"],
            hashed_password=hash_password(ADMIN_USER["password"]),
            display_name=ADMIN_USER["display_name"],
            university_id=university.id,
            is_admin=True,
            admin_role="super_admin",
        )
        session.add(admin)

        students: list[User] = []
        for data in STUDENTS:
            student = User(
                university_id=university.id,
                hashed_password=hash_password(data["password"]),
                **{k: v for k, v in data.items() if k != "password"},
            )
            session.add(student)
            students.append(student)
        await session.flush()
        print(f"✅ Created 1 admin and {len(students)} students")

        # 3. Courses
        courses: dict[str, Course] = {}
        for data in COURSES:
            course = Course(university_id=university.id, created_by=admin.id, **data)
            session.add(course)
            courses[course.course_code] = course
        await session.flush()
        print(f"✅ Created {len(courses)} courses")

        # 4. Reviews, spread over the last few weeks
        now = utcnow()
        for offset, (student_index, code, overall, difficulty, workload, content) in enumerate(REVIEWS):
            student = students[student_index]
            posted = now - timedelta(days=3 * (len(REVIEWS) - offset))
            session.add(
                Review(
                    course_id=courses[code].id,
                    user_id=student.id,
                    overall_rating=overall,
                    difficulty=difficulty,
                    workload=workload,
                    content=content,
                    anonymous_admission_year=student.admission_year,
                    anonymous_department=student.department,
                    created_at=posted,
                    updated_at=posted,
                )
            )
        await session.flush()

        for course in courses.values():
            await recompute_aggregates(session, course.id)

        await session.commit()

        print(f"✅ Created {len(REVIEWS)} reviews")
        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        print(f"   Admin:    {ADMIN_USER['email']} / {ADMIN_USER['password']}")
        print(f"   Students: {', '.join(s['email'] for s in STUDENTS)} / student1234")
        print(f"   Courses:  {len(courses)}")
        print(f"   Reviews:  {len(REVIEWS)}")
        print("=" * 60)
        print("🎉 Done! You can now log in at /api/v1/auth/login")


if __name__ == "__main__":
    asyncio.run(seed())
