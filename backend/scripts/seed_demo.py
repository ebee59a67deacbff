"""CLI script to seed a demo course with a published quiz.
Usage: python scripts/seed_demo.py [--code CS4550] [--password demo]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `coursehub` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from coursehub.database import engine, create_db_and_tables
from coursehub import models, repositories, services
from coursehub.schemas import ByCode, CourseIn, QuizIn, RegisterIn

DEMO_QUESTIONS = [
    {
        "title": "Tags",
        "points": 5,
        "question_type": "MULTIPLE_CHOICE",
        "question_text": "Which tag creates a paragraph?",
        "choices": [
            {"text": "<p>", "is_correct": True},
            {"text": "<div>"},
            {"text": "<span>"},
        ],
    },
    {
        "title": "Void elements",
        "points": 3,
        "question_type": "TRUE_FALSE",
        "question_text": "<br> is a void element.",
        "correct_answer": True,
    },
    {
        "title": "Styling",
        "points": 2,
        "question_type": "FILL_BLANK",
        "question_text": "The language used to style HTML is ____.",
        "correct_answers": ["CSS", "Cascading Style Sheets"],
    },
]


def _ensure_user(session: Session, username: str, password: str, role: models.Role) -> models.User:
    existing = repositories.UserRepository(session).get_by_username(username)
    if existing:
        return existing
    return services.AuthService(session).register(RegisterIn(username=username, password=password, role=role))


def main(code: str = "CS4550", password: str = "demo"):
    """Create demo faculty/student users, a course and a published quiz.

    Running the script twice reuses the users and course and only adds
    another quiz. Results are printed to stdout.
    """
    create_db_and_tables()
    with Session(engine) as session:
        faculty = _ensure_user(session, "demo_faculty", password, models.Role.FACULTY)
        student = _ensure_user(session, "demo_student", password, models.Role.STUDENT)
        courses = services.CourseService(session)
        course = repositories.CourseRepository(session).get_by_code(code)
        if not course:
            course = courses.create_course(faculty, CourseIn(code=code, name="Web Development"))
        services.EnrollmentService(session).enroll(faculty, student.id, ByCode(code=code))
        quiz = services.QuizService(session).create(
            faculty,
            ByCode(code=code),
            QuizIn(title="Q1 - HTML", published=True, questions=DEMO_QUESTIONS),
        )
        print(f'Course {course.code} (id {course.id}); quiz {quiz.id} worth {quiz.total_points} points')
        print(f'Log in as demo_faculty / demo_student with password "{password}"')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--code', default='CS4550', help='Course code to create or reuse')
    parser.add_argument('--password', default='demo', help='Password for the demo users')
    args = parser.parse_args()
    main(code=args.code, password=args.password)
