"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the course management backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Service exceptions are translated
into HTTP status codes in one place (`service_errors`).

Endpoints implemented:
- POST /auth/register, POST /auth/login, GET /auth/profile
- GET/PUT/DELETE /users, /users/{user_id}
- GET/POST /courses, GET/PUT/DELETE /courses/{course_ref}
- GET/POST /courses/{course_ref}/modules, PUT/DELETE /modules/{module_id}
- POST/DELETE /users/{uid}/courses/{course_ref}, GET /users/{uid}/courses,
  GET /courses/{course_ref}/users
- GET/POST /courses/{course_ref}/assignments, GET/PUT/DELETE /assignments/{id}
- GET/POST /courses/{course_ref}/quizzes, GET/PUT/DELETE /quizzes/{quiz_id},
  PUT /quizzes/{quiz_id}/publish, PUT /quizzes/{quiz_id}/unpublish
- POST/GET /quizzes/{quiz_id}/attempts, GET/PUT /attempts/{attempt_id}
"""

from contextlib import contextmanager
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session
from typing import List, Optional
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, models
from .auth import get_current_user
from .config import settings
from .errors import ConflictError, ForbiddenError, NotFoundError
from .schemas import (
    AssignmentIn,
    AssignmentOut,
    AssignmentUpdate,
    AttemptOut,
    AttemptSubmission,
    CourseIn,
    CourseOut,
    CourseUpdate,
    EnrollmentOut,
    LoginIn,
    ModuleIn,
    ModuleOut,
    QuizIn,
    QuizOut,
    QuizUpdate,
    RegisterIn,
    TokenOut,
    UserOut,
    UserUpdate,
    parse_course_ref,
)

app = FastAPI(title="Course Management API")
logger = logging.getLogger("coursehub.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@contextmanager
def service_errors():
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _course_ref(course_ref: str):
    if not course_ref.strip():
        raise HTTPException(status_code=400, detail='empty course reference')
    return parse_course_ref(course_ref)


def _user_id(uid: str, user: models.User) -> int:
    """Resolve a `{uid}` path segment; `current` means the caller."""
    if uid == "current":
        return user.id
    try:
        return int(uid)
    except ValueError:
        raise HTTPException(status_code=400, detail=f'invalid user id: {uid}')


def _strip_answer_key(question: dict) -> dict:
    out = {k: v for k, v in question.items() if k not in ("correct_answer", "correct_answers")}
    out["choices"] = [{k: v for k, v in c.items() if k != "is_correct"} for c in question.get("choices", [])]
    return out


def _quiz_out(quiz: models.Quiz, user: models.User) -> QuizOut:
    """Serialize a quiz; students never receive the answer key."""
    out = QuizOut.model_validate(quiz)
    if not services.is_staff(user):
        out.questions = [_strip_answer_key(q) for q in out.questions]
    return out


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


# ---------------------------------------------------------------- auth

@app.post('/auth/register', response_model=UserOut)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user.

    Usernames are unique; a taken username returns 400 so clients can
    show a plain "already taken" message.
    """
    auth = services.AuthService(db)
    try:
        return auth.register(payload)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token.

    The returned token contains `user_id`, `username` and `role` and is
    signed using the configured JWT secret.
    """
    auth = services.AuthService(db)
    token = auth.authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/auth/profile', response_model=UserOut)
def profile(user: models.User = Depends(get_current_user)):
    """Return the authenticated user."""
    return user


# ---------------------------------------------------------------- users

@app.get('/users', response_model=List[UserOut])
def list_users(role: Optional[str] = None, name: Optional[str] = None, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """List users filtered by `role` (ALL for any) and partial `name`."""
    with service_errors():
        return services.UserService(db).list_users(user, role=role, name=name)


@app.get('/users/{user_id}', response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.UserService(db).get_user(user_id)


@app.put('/users/{user_id}', response_model=UserOut)
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Update a user. Users may edit themselves; administrators anyone."""
    with service_errors():
        return services.UserService(db).update_user(user, user_id, payload)


@app.delete('/users/{user_id}')
def delete_user(user_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        services.UserService(db).delete_user(user, user_id)
    return {'status': 'ok'}


# ---------------------------------------------------------------- courses

@app.get('/courses', response_model=List[CourseOut])
def list_courses(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Courses visible to the caller: all for admins, enrolled otherwise."""
    return services.CourseService(db).list_courses(user)


@app.post('/courses', response_model=CourseOut)
def create_course(payload: CourseIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.CourseService(db).create_course(user, payload)


@app.get('/courses/{course_ref}', response_model=CourseOut)
def get_course(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Fetch a course by numeric id or by course code."""
    with service_errors():
        return services.CourseService(db).resolve(_course_ref(course_ref))


@app.put('/courses/{course_ref}', response_model=CourseOut)
def update_course(course_ref: str, payload: CourseUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.CourseService(db).update_course(user, _course_ref(course_ref), payload)


@app.delete('/courses/{course_ref}')
def delete_course(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        services.CourseService(db).delete_course(user, _course_ref(course_ref))
    return {'status': 'ok'}


@app.get('/courses/{course_ref}/modules', response_model=List[ModuleOut])
def list_modules(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.CourseService(db).list_modules(_course_ref(course_ref))


@app.post('/courses/{course_ref}/modules', response_model=ModuleOut)
def create_module(course_ref: str, payload: ModuleIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.CourseService(db).create_module(user, _course_ref(course_ref), payload)


@app.put('/modules/{module_id}', response_model=ModuleOut)
def update_module(module_id: int, payload: ModuleIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.CourseService(db).update_module(user, module_id, payload)


@app.delete('/modules/{module_id}')
def delete_module(module_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        services.CourseService(db).delete_module(user, module_id)
    return {'status': 'ok'}


# ---------------------------------------------------------------- enrollments

@app.get('/users/{uid}/courses', response_model=List[CourseOut])
def courses_for_user(uid: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Courses a user is enrolled in; `uid` may be `current`."""
    with service_errors():
        return services.EnrollmentService(db).courses_for_user(user, _user_id(uid, user))


@app.post('/users/{uid}/courses/{course_ref}', response_model=EnrollmentOut)
def enroll(uid: str, course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Enroll a user in a course. Enrolling twice returns the same row."""
    with service_errors():
        return services.EnrollmentService(db).enroll(user, _user_id(uid, user), _course_ref(course_ref))


@app.delete('/users/{uid}/courses/{course_ref}')
def unenroll(uid: str, course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        removed = services.EnrollmentService(db).unenroll(user, _user_id(uid, user), _course_ref(course_ref))
    return {'status': 'ok', 'removed': removed}


@app.get('/courses/{course_ref}/users', response_model=List[UserOut])
def users_for_course(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.EnrollmentService(db).users_for_course(_course_ref(course_ref))


# ---------------------------------------------------------------- assignments

@app.get('/courses/{course_ref}/assignments', response_model=List[AssignmentOut])
def list_assignments(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.AssignmentService(db).list_for_course(_course_ref(course_ref))


@app.post('/courses/{course_ref}/assignments', response_model=AssignmentOut)
def create_assignment(course_ref: str, payload: AssignmentIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.AssignmentService(db).create(user, _course_ref(course_ref), payload)


@app.get('/assignments/{assignment_id}', response_model=AssignmentOut)
def get_assignment(assignment_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.AssignmentService(db).get(assignment_id)


@app.put('/assignments/{assignment_id}', response_model=AssignmentOut)
def update_assignment(assignment_id: int, payload: AssignmentUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.AssignmentService(db).update(user, assignment_id, payload)


@app.delete('/assignments/{assignment_id}')
def delete_assignment(assignment_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        services.AssignmentService(db).delete(user, assignment_id)
    return {'status': 'ok'}


# ---------------------------------------------------------------- quizzes

@app.get('/courses/{course_ref}/quizzes', response_model=List[QuizOut])
def list_quizzes(course_ref: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Quizzes of a course. Students only see published quizzes."""
    with service_errors():
        quizzes = services.QuizService(db).list_for_course(user, _course_ref(course_ref))
    return [_quiz_out(q, user) for q in quizzes]


@app.post('/courses/{course_ref}/quizzes', response_model=QuizOut)
def create_quiz(course_ref: str, payload: QuizIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Create a quiz owned by the caller. `total_points` is computed."""
    with service_errors():
        quiz = services.QuizService(db).create(user, _course_ref(course_ref), payload)
    return _quiz_out(quiz, user)


@app.get('/quizzes/{quiz_id}', response_model=QuizOut)
def get_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        quiz = services.QuizService(db).get_visible(user, quiz_id)
    return _quiz_out(quiz, user)


@app.put('/quizzes/{quiz_id}', response_model=QuizOut)
def update_quiz(quiz_id: int, payload: QuizUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        quiz = services.QuizService(db).update(user, quiz_id, payload)
    return _quiz_out(quiz, user)


@app.delete('/quizzes/{quiz_id}')
def delete_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        services.QuizService(db).delete(user, quiz_id)
    return {'status': 'ok'}


@app.put('/quizzes/{quiz_id}/publish', response_model=QuizOut)
def publish_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        quiz = services.QuizService(db).set_published(user, quiz_id, True)
    return _quiz_out(quiz, user)


@app.put('/quizzes/{quiz_id}/unpublish', response_model=QuizOut)
def unpublish_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        quiz = services.QuizService(db).set_published(user, quiz_id, False)
    return _quiz_out(quiz, user)


# ---------------------------------------------------------------- attempts

@app.post('/quizzes/{quiz_id}/attempts', response_model=AttemptOut)
def start_attempt(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Start a new attempt for the caller.

    Returns 400 when the quiz's attempt limit is already reached.
    """
    with service_errors():
        started = services.AttemptService(db).start_attempt(user, quiz_id)
    if not started.allowed:
        raise HTTPException(status_code=400, detail='attempt limit reached')
    return started.attempt


@app.get('/quizzes/{quiz_id}/attempts', response_model=List[AttemptOut])
def list_attempts(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """The caller's attempts for a quiz, newest first."""
    with service_errors():
        return services.AttemptService(db).list_attempts(user, quiz_id)


@app.get('/attempts/{attempt_id}', response_model=AttemptOut)
def get_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        return services.AttemptService(db).get_attempt(user, attempt_id)


@app.put('/attempts/{attempt_id}', response_model=AttemptOut)
def submit_attempt(attempt_id: int, submission: AttemptSubmission, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Grade and complete an attempt.

    `is_correct` on submitted answers is ignored and recomputed. A second
    submission of the same attempt returns 409.
    """
    with service_errors():
        return services.AttemptService(db).submit_attempt(user, attempt_id, submission.answers)
