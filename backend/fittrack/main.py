"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the FitTrack backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and translate service exceptions into HTTP errors. Every error
body has the shape `{"error": "<message>"}`.

Endpoints implemented:
- POST/GET /api/workouts, DELETE /api/workouts/{id}
- POST /api/auth/signup, /login, /request-reset, /verify-reset-code,
  /reset-password, /reset-login, /change-password; GET /api/auth/verify
- GET/PATCH /api/profile
- GET/POST /api/exercises, GET /api/exercises/distinct,
  DELETE /api/exercises/{id}
- GET /api/dashboard
- POST/GET /api/plans
- POST /api/diet-plans, POST /api/diet-plans/save, GET /api/diet-plans/my,
  DELETE /api/diet-plans/{id}
- GET /api/admin/users
"""

from contextlib import asynccontextmanager
from datetime import date
import json
import logging
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import repositories, services
from .auth import CurrentUser, decode_token, get_current_user, require_admin, bearer_scheme
from .config import settings
from .database import Database, get_document_session, get_session
from .errors import (
    AuthError, Conflict, DietGenerationError, DietResponseParseError, InvalidInput, NotFound, PersistenceError,
)
from .schemas import (
    ChangePasswordIn, DietPlanIn, DietPromptIn, ExerciseIn, LoginIn, PlanIn, ProfileUpdateIn,
    ResetCodeIn, ResetPasswordIn, ResetRequestIn, SignupIn, WorkoutIn,
)
from .utils.diet_ai import DietPlanGenerator
from .utils.mailer import Mailer
from .utils.rate_limit import InMemoryRateLimiter

logger = logging.getLogger("fittrack.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Release outbound and database connections held on app.state.
    logger.info("shutting down")
    app.state.diet_generator.close()
    app.state.db.dispose()


app = FastAPI(title="FitTrack API", lifespan=lifespan)
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

TOO_MANY_REQUESTS = "Too many requests, please try again later."

app.state.settings = settings
app.state.db = Database.from_settings(settings)
app.state.mailer = Mailer(settings)
app.state.diet_generator = DietPlanGenerator(settings)
app.state.rate_limiter = InMemoryRateLimiter(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
app.state.diet_rate_limiter = InMemoryRateLimiter(settings.DIET_RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
app.state.db.create_all()

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    client = request.client.host if request.client else "unknown"
    allowed, retry_after = request.app.state.rate_limiter.allow(client)
    if not allowed:
        logger.warning("rate_limited %s", json.dumps({"request_id": req_id, "client": client, "path": request.url.path}))
        return JSONResponse(status_code=429, content={"error": TOO_MANY_REQUESTS},
                            headers={"Retry-After": str(retry_after), "X-Request-ID": req_id})
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {"request_id": req_id, "path": request.url.path, "method": request.method,
                 "duration_ms": elapsed_ms, "client": client},
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {"request_id": req_id, "path": request.url.path, "method": request.method,
             "status_code": response.status_code, "duration_ms": elapsed_ms, "client": client},
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        logger.warning("[404] %s %s", request.method, request.url.path)
        detail = "Route not found"
    else:
        detail = exc.detail
    return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies and query strings are client errors, same as the
    # service-level checks.
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    # Routes without their own persistence handling land here. The request
    # session is rolled back when the dependency closes it.
    logger.exception(
        "database_error %s",
        json.dumps({"request_id": getattr(request.state, "request_id", None),
                    "path": request.url.path, "method": request.method}, ensure_ascii=True),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _client_error(e: Exception) -> HTTPException:
    """Map a service exception onto the HTTP error it stands for."""
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, Conflict):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _parse_document_id(raw: str, message: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail=message)


# ---- workouts (relational, transactional) ----

@app.post('/api/workouts', status_code=201)
def save_workout(payload: WorkoutIn, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """Save a workout: header, exercises and additional exercise names.

    The whole graph is written in one transaction. A missing or empty
    exercise list is rejected with 400 before anything is written; any
    database failure rolls everything back and answers 500.
    """
    svc = services.WorkoutService(db)
    try:
        result = svc.save_workout(user.id, payload)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error("error saving workout for user %s: %r", user.id, e.cause, exc_info=e)
        raise HTTPException(status_code=500, detail='Failed to save workout')
    return {'message': result.message}


@app.get('/api/workouts')
def list_workouts(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """List the caller's workouts with their exercises in submission order."""
    return {'workouts': services.WorkoutService(db).list_workouts(user.id)}


@app.delete('/api/workouts/{workout_id}')
def delete_workout(workout_id: int, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    try:
        services.WorkoutService(db).delete_workout(user.id, workout_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error("error deleting workout %s: %r", workout_id, e.cause, exc_info=e)
        raise HTTPException(status_code=500, detail='Failed to delete workout')
    return {'message': 'Workout deleted'}


# ---- auth ----

def _auth_service(request: Request, db: Session) -> services.AuthService:
    return services.AuthService(db, request.app.state.settings, request.app.state.mailer)


@app.post('/api/auth/signup', status_code=201)
def signup(payload: SignupIn, request: Request, db: Session = Depends(get_session)):
    """Create an account and return a 7-day token with the public user."""
    try:
        token, user = _auth_service(request, db).signup(payload.username, payload.email, payload.password)
    except (InvalidInput, Conflict) as e:
        raise _client_error(e)
    except PersistenceError as e:
        logger.error("signup failed: %r", e.cause, exc_info=e)
        raise HTTPException(status_code=500, detail='Internal server error')
    return {'token': token, 'user': services.public_user(user)}


@app.post('/api/auth/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate by username or email and return a short-lived token."""
    try:
        token = _auth_service(request, db).authenticate(payload.identifier, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'token': token}


@app.get('/api/auth/verify')
def verify(request: Request, db: Session = Depends(get_session), credentials=Depends(bearer_scheme)):
    """Check a token and return the account it belongs to."""
    if credentials is None:
        raise HTTPException(status_code=401, detail='Unauthorized')
    payload = decode_token(credentials.credentials, request.app.state.settings)
    user = repositories.UserRepository(db).get(payload.get('id')) if payload.get('id') is not None else None
    if not user:
        raise HTTPException(status_code=401, detail='User not found')
    return {'user': services.public_user(user)}


@app.post('/api/auth/request-reset')
def request_reset(payload: ResetRequestIn, request: Request, db: Session = Depends(get_session)):
    try:
        _auth_service(request, db).request_reset(payload.email)
    except (InvalidInput, NotFound) as e:
        raise _client_error(e)
    return {'message': 'Reset code sent to your email'}


@app.post('/api/auth/verify-reset-code')
def verify_reset_code(payload: ResetCodeIn, request: Request, db: Session = Depends(get_session)):
    try:
        _auth_service(request, db).verify_reset_code(payload.email, payload.code)
    except (InvalidInput, AuthError, NotFound) as e:
        raise _client_error(e)
    return {'message': 'Code verified successfully'}


@app.post('/api/auth/reset-password')
def reset_password(payload: ResetPasswordIn, request: Request, db: Session = Depends(get_session)):
    try:
        _auth_service(request, db).reset_password(payload.email, payload.code, payload.new_password)
    except (InvalidInput, AuthError, NotFound) as e:
        raise _client_error(e)
    return {'message': 'Password updated successfully'}


@app.post('/api/auth/reset-login')
def reset_login(payload: ResetCodeIn, request: Request, db: Session = Depends(get_session)):
    """Log in with a valid reset code; the code is consumed."""
    try:
        token, user = _auth_service(request, db).reset_login(payload.email, payload.code)
    except (InvalidInput, AuthError, NotFound) as e:
        raise _client_error(e)
    return {'message': 'Logged in successfully', 'token': token, 'user': services.public_user(user)}


@app.post('/api/auth/change-password')
def change_password(payload: ChangePasswordIn, request: Request, db: Session = Depends(get_session),
                    user: CurrentUser = Depends(get_current_user)):
    try:
        _auth_service(request, db).change_password(user.id, payload.current_password, payload.new_password)
    except (InvalidInput, AuthError, NotFound) as e:
        raise _client_error(e)
    return {'message': 'Password updated successfully'}


# ---- profile ----

@app.get('/api/profile')
def get_profile(db: Session = Depends(get_session), docs: Session = Depends(get_document_session),
                user: CurrentUser = Depends(get_current_user)):
    """Return the caller's account and exercise log."""
    try:
        return services.ProfileService(db, docs).get_profile(user.id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.patch('/api/profile')
def update_profile(payload: ProfileUpdateIn, db: Session = Depends(get_session),
                   docs: Session = Depends(get_document_session), user: CurrentUser = Depends(get_current_user)):
    """Update email and username; both are required and must stay unique."""
    try:
        updated = services.ProfileService(db, docs).update_profile(user.id, payload.email, payload.username)
    except (InvalidInput, Conflict, NotFound) as e:
        raise _client_error(e)
    return {'user': updated}


# ---- exercise log (document store) ----

@app.get('/api/exercises')
def list_exercises(
    exercise_name: Optional[str] = None,
    workout_type: Optional[str] = None,
    muscle_group: Optional[str] = None,
    set_type: Optional[str] = None,
    weight_min: Optional[float] = None,
    weight_max: Optional[float] = None,
    date_start: Optional[date] = None,
    date_end: Optional[date] = None,
    docs: Session = Depends(get_document_session),
    user: CurrentUser = Depends(get_current_user),
):
    """List exercise-log entries matching the optional filters, newest first."""
    exercises = services.ExerciseService(docs).search(
        user.document_owner,
        exercise_name=exercise_name,
        workout_type=workout_type,
        muscle_group=muscle_group,
        set_type=set_type,
        weight_min=weight_min,
        weight_max=weight_max,
        date_start=date_start,
        date_end=date_end,
    )
    logger.info("fetched %d exercises for user %s", len(exercises), user.id)
    return {'exercises': exercises}


@app.get('/api/exercises/distinct')
def distinct_exercises(docs: Session = Depends(get_document_session), user: CurrentUser = Depends(get_current_user)):
    return {'exercises': services.ExerciseService(docs).distinct_names(user.document_owner)}


@app.post('/api/exercises', status_code=201)
def create_exercise(payload: ExerciseIn, docs: Session = Depends(get_document_session),
                    user: CurrentUser = Depends(get_current_user)):
    try:
        exercise = services.ExerciseService(docs).create(user.document_owner, payload)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("exercise created for user %s", user.id)
    return {'exercise': exercise}


@app.delete('/api/exercises/{exercise_id}')
def delete_exercise(exercise_id: str, docs: Session = Depends(get_document_session),
                    user: CurrentUser = Depends(get_current_user)):
    entry_id = _parse_document_id(exercise_id, 'Invalid exercise ID')
    try:
        services.ExerciseService(docs).delete(user.document_owner, entry_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info("exercise %s deleted for user %s", entry_id, user.id)
    return {'message': 'Exercise deleted'}


@app.get('/api/dashboard')
def dashboard(
    date_start: Optional[date] = None,
    date_end: Optional[date] = None,
    exercise_name: Optional[str] = None,
    stack_by: str = 'workout_type',
    docs: Session = Depends(get_document_session),
    user: CurrentUser = Depends(get_current_user),
):
    """Aggregated training metrics for the caller's exercise log."""
    return services.DashboardService(docs).summary(
        user.document_owner, date_start=date_start, date_end=date_end,
        exercise_name=exercise_name, stack_by=stack_by,
    )


# ---- saved workout plans ----

@app.post('/api/plans')
def save_plan(payload: PlanIn, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    try:
        return services.PlanService(db).save_plan(user.id, payload)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error("error saving plan for user %s: %r", user.id, e.cause, exc_info=e)
        raise HTTPException(status_code=500, detail='Server error')


@app.get('/api/plans')
def list_plans(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    return services.PlanService(db).list_plans(user.id)


# ---- diet plans (document store) ----

@app.post('/api/diet-plans')
def generate_diet_plan(payload: DietPromptIn, request: Request, docs: Session = Depends(get_document_session),
                       user: CurrentUser = Depends(get_current_user)):
    """Generate a diet plan preview with the diet model. Nothing is saved."""
    allowed, retry_after = request.app.state.diet_rate_limiter.allow(user.document_owner)
    if not allowed:
        raise HTTPException(status_code=429, detail=TOO_MANY_REQUESTS, headers={"Retry-After": str(retry_after)})
    svc = services.DietPlanService(docs, request.app.state.diet_generator)
    try:
        plan = svc.preview(user.document_owner, payload.prompt)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DietResponseParseError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except DietGenerationError as e:
        logger.error("diet plan generation failed: %s", e)
        raise HTTPException(status_code=500, detail='Failed to generate diet plan')
    return {'dietPlan': plan}


@app.post('/api/diet-plans/save', status_code=201)
def save_diet_plan(payload: DietPlanIn, docs: Session = Depends(get_document_session),
                   user: CurrentUser = Depends(get_current_user)):
    try:
        plan = services.DietPlanService(docs).save(user.document_owner, payload)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'dietPlan': plan}


@app.get('/api/diet-plans/my')
def my_diet_plans(docs: Session = Depends(get_document_session), user: CurrentUser = Depends(get_current_user)):
    return {'plans': services.DietPlanService(docs).list_plans(user.document_owner)}


@app.delete('/api/diet-plans/{plan_id}')
def delete_diet_plan(plan_id: str, docs: Session = Depends(get_document_session),
                     user: CurrentUser = Depends(get_current_user)):
    parsed = _parse_document_id(plan_id, 'Invalid plan ID')
    try:
        deleted = services.DietPlanService(docs).delete(user.document_owner, parsed)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'message': 'Diet plan deleted successfully', 'deletedPlan': deleted}


# ---- admin ----

@app.get('/api/admin/users')
def admin_users(db: Session = Depends(get_session), admin: CurrentUser = Depends(require_admin)):
    """List all accounts. Password hashes are never returned."""
    return [
        {**services.public_user(u), 'is_admin': u.is_admin, 'created_at': u.created_at.isoformat()}
        for u in repositories.UserRepository(db).list_all()
    ]


@app.get("/", response_class=PlainTextResponse)
def home():
    return "API is working"


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
