"""CLI script to seed a demo teacher, students, a class and activities.
Usage: python scripts/seed_demo.py [--students N] [--subject SUBJECT]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from app.database import engine, create_db_and_tables
from app import repositories, services
from app.schemas import ActivityIn

DEMO_ACTIVITIES = [
    {
        'title': 'Fractions warm-up',
        'difficulty': 'easy',
        'points_reward': 50,
        'content': {
            'activity_type': 'multiple_choice',
            'questions': [{'prompt': '1/2 + 1/4 = ?', 'choices': ['3/4', '2/6', '1/8'], 'correct_index': 0}],
        },
    },
    {
        'title': 'Vocabulary check',
        'difficulty': 'medium',
        'points_reward': 30,
        'content': {'activity_type': 'short_answer', 'prompts': ['Define "numerator".']},
    },
    {
        'title': 'Match the shapes',
        'difficulty': 'easy',
        'points_reward': 20,
        'content': {'activity_type': 'matching', 'pairs': {'3 sides': 'triangle', '4 equal sides': 'square'}},
    },
]


def _get_or_register(auth: services.AuthService, username: str, role: str, grade=None):
    existing = auth.user_repo.get_by_username(username)
    if existing:
        return existing
    return auth.register(username, 'demo', role=role, grade=grade)


def main(students: int = 3, subject: str = 'math'):
    """Create demo users (password `demo`), one class and a few activities.

    Safe to run repeatedly: existing users and enrollments are reused,
    activities are only added when the subject has none yet.
    """
    create_db_and_tables()
    with Session(engine) as session:
        auth = services.AuthService(session)
        teacher = _get_or_register(auth, 'teacher', 'teacher')
        classes = services.ClassroomService(session)
        existing = repositories.ClassroomRepository(session).list_for_teacher(teacher.id)
        classroom = existing[0] if existing else classes.create(teacher, 'Demo class')
        for i in range(1, students + 1):
            student = _get_or_register(auth, f'student{i}', 'student', grade='7')
            classes.enroll(teacher, classroom.id, student.id)
        activity_svc = services.ActivityService(session)
        if not activity_svc.list(subject):
            for item in DEMO_ACTIVITIES:
                activity_svc.publish(ActivityIn(subject=subject, **item))
        print(f'Teacher id {teacher.id}, classroom id {classroom.id}, '
              f'{students} students, {len(activity_svc.list(subject))} activities in {subject!r}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--students', type=int, default=3, help='Number of demo students to create')
    parser.add_argument('--subject', default='math', help='Subject for the demo activities')
    args = parser.parse_args()
    main(students=args.students, subject=args.subject)
