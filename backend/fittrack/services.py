"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
auxiliary clients (mailer, diet-plan model). Services validate input,
execute domain logic and persist through repositories; they raise the
exceptions in `fittrack.errors` and leave HTTP concerns to the
controllers.
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from . import documents, models, repositories, schemas
from .config import Settings
from .errors import AuthError, Conflict, InvalidInput, NotFound, PersistenceError
from .utils.diet_ai import DietPlanGenerator
from .utils.mailer import Mailer

logger = logging.getLogger("fittrack.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; they are stored as UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def public_user(user: models.User) -> Dict[str, Any]:
    return {"id": user.id, "username": user.username, "email": user.email}


class AuthService:
    """Account creation, login and password-reset flows."""
    def __init__(self, session: Session, settings: Settings, mailer: Optional[Mailer] = None):
        self.session = session
        self.settings = settings
        self.mailer = mailer
        self.user_repo = repositories.UserRepository(session)

    def issue_token(self, user: models.User, expires_in: timedelta) -> str:
        expire = _utcnow() + expires_in
        payload = {"id": user.id, "is_admin": bool(user.is_admin), "exp": int(expire.timestamp())}
        return jwt.encode(payload, self.settings.JWT_SECRET, algorithm=self.settings.JWT_ALGORITHM)

    def _session_ttl(self) -> timedelta:
        return timedelta(days=self.settings.JWT_SESSION_EXPIRE_DAYS)

    def signup(self, username: Optional[str], email: Optional[str], password: Optional[str]):
        """Create an account and return `(token, user)`.

        The welcome mail is best effort; a mail failure does not undo the
        signup.
        """
        if not username or not email or not password:
            raise InvalidInput("All fields are required")
        if not EMAIL_RE.match(email):
            raise InvalidInput("Invalid email format")
        existing = self.user_repo.find_conflict(email, username)
        if existing:
            if existing.email == email:
                raise Conflict("Email already in use")
            raise Conflict("Username already taken")
        user = models.User(username=username, email=email, password_hash=PWD_CTX.hash(password))
        try:
            user = self.user_repo.create(user)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("failed to create user", cause=e) from e
        logger.info("user %s signed up", user.id)
        if self.mailer is not None:
            self.mailer.send_welcome(user.email, user.username)
        return self.issue_token(user, self._session_ttl()), user

    def authenticate(self, identifier: Optional[str], password: Optional[str]) -> str:
        """Verify credentials and return a signed JWT.

        `identifier` matches either the username or the email address.
        """
        user = self.user_repo.get_by_identifier(identifier) if identifier else None
        if not user:
            raise AuthError("User not found")
        if not password or not PWD_CTX.verify(password, user.password_hash):
            raise AuthError("Invalid credentials")
        return self.issue_token(user, timedelta(hours=self.settings.JWT_LOGIN_EXPIRE_HOURS))

    def get_user(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def request_reset(self, email: Optional[str]) -> None:
        """Store a fresh 6-digit reset code for `email` and mail it."""
        if not email:
            raise InvalidInput("Email is required")
        user = self.user_repo.get_by_email(email)
        if not user:
            raise NotFound("User not found")
        user.reset_code = f"{secrets.randbelow(900000) + 100000}"
        user.reset_code_expires = _utcnow() + timedelta(minutes=self.settings.RESET_CODE_TTL_MINUTES)
        self.user_repo.save(user)
        logger.info("reset code issued for user %s", user.id)
        if self.mailer is not None:
            self.mailer.send_reset_code(user.email, user.username, user.reset_code,
                                        self.settings.RESET_CODE_TTL_MINUTES)

    def _check_reset_code(self, email: str, code: str) -> models.User:
        user = self.user_repo.get_by_email(email)
        if not user:
            raise NotFound("User not found")
        if not user.reset_code or not user.reset_code_expires:
            raise AuthError("No reset code requested")
        if not secrets.compare_digest(user.reset_code, str(code)):
            raise AuthError("Invalid code")
        if _utcnow() > _as_utc(user.reset_code_expires):
            raise AuthError("Code expired")
        return user

    def verify_reset_code(self, email: Optional[str], code: Optional[str]) -> None:
        if not email or not code:
            raise InvalidInput("Email and code required")
        self._check_reset_code(email, code)

    def reset_password(self, email: Optional[str], code: Optional[str], new_password: Optional[str]) -> None:
        if not email or not code or not new_password:
            raise InvalidInput("Email, code, and new password required")
        user = self._check_reset_code(email, code)
        user.password_hash = PWD_CTX.hash(new_password)
        user.reset_code = None
        user.reset_code_expires = None
        self.user_repo.save(user)
        logger.info("password reset for user %s", user.id)

    def reset_login(self, email: Optional[str], code: Optional[str]):
        """Consume a reset code as a one-time login. Returns `(token, user)`."""
        if not email or not code:
            raise InvalidInput("Email and code required")
        user = self._check_reset_code(email, code)
        user.reset_code = None
        user.reset_code_expires = None
        user = self.user_repo.save(user)
        return self.issue_token(user, self._session_ttl()), user

    def change_password(self, user_id: int, current_password: Optional[str], new_password: Optional[str]) -> None:
        if not current_password or not new_password:
            raise InvalidInput("All fields are required")
        user = self.get_user(user_id)
        if not PWD_CTX.verify(current_password, user.password_hash):
            raise AuthError("Current password is incorrect")
        user.password_hash = PWD_CTX.hash(new_password)
        self.user_repo.save(user)


class ProfileService:
    """Read and update the caller's profile."""
    def __init__(self, session: Session, doc_session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.exercise_repo = repositories.ExerciseRepository(doc_session)

    def get_profile(self, user_id: int) -> Dict[str, Any]:
        """Return the user and their whole exercise log, newest first."""
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        exercises = self.exercise_repo.find(str(user_id))
        return {"user": public_user(user), "exercises": [e.to_document() for e in exercises]}

    def update_profile(self, user_id: int, email: Optional[str], username: Optional[str]) -> Dict[str, Any]:
        if not email or not username:
            raise InvalidInput("Email and username are required")
        if not EMAIL_RE.match(email):
            raise InvalidInput("Invalid email format")
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        other = self.user_repo.find_conflict(email, username, exclude_id=user_id)
        if other:
            raise Conflict("Email already in use" if other.email == email else "Username taken")
        user.email = email
        user.username = username
        try:
            return public_user(self.user_repo.save(user))
        except IntegrityError as e:
            # A concurrent update took the email or username after the check.
            self.session.rollback()
            other = self.user_repo.find_conflict(email, username, exclude_id=user_id)
            if other is not None and other.username == username and other.email != email:
                raise Conflict("Username taken") from e
            raise Conflict("Email already in use") from e


@dataclass
class SaveResult:
    """Confirmation of a committed workout graph."""
    workout_id: int
    exercise_count: int
    additional_count: int
    message: str = "Workout saved successfully"


class WorkoutService:
    """Logged workouts: one header row, its exercises and their extras.

    `save_workout` is the only multi-row write in the system. It runs in
    one transaction on the given session: inserts happen one at a time in
    submission order and either everything commits or everything is rolled
    back.
    """
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.WorkoutRepository(session)

    @staticmethod
    def _validate(user_id: Optional[int], payload: schemas.WorkoutIn):
        if user_id is None:
            raise InvalidInput("Invalid workout data")
        if not payload.exercises:
            raise InvalidInput("Invalid workout data")

    def save_workout(self, user_id: Optional[int], payload: schemas.WorkoutIn) -> SaveResult:
        """Persist the workout graph atomically.

        Raises `InvalidInput` before touching the database when the caller
        or the exercise list is missing, and `PersistenceError` (after a
        full rollback) when any insert or the commit fails. Nothing is
        retried; resubmitting creates a second, independent workout.
        """
        self._validate(user_id, payload)
        additional_count = 0
        try:
            header = self.repo.add_header(user_id, payload.exercise_date, payload.workout_type, payload.muscle_group)
            workout_id = header.id
            for position, ex in enumerate(payload.exercises):
                row = self.repo.add_exercise(
                    workout_id, position, ex.exercise_name, ex.sets, ex.reps,
                    ex.weight, ex.set_type, ex.notes,
                )
                for extra_position, name in enumerate(ex.additional_exercises or []):
                    self.repo.add_additional(row.id, extra_position, name)
                    additional_count += 1
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("failed to save workout", cause=e) from e
        logger.info("workout %s saved for user %s (%d exercises, %d extras)",
                    workout_id, user_id, len(payload.exercises), additional_count)
        return SaveResult(workout_id=workout_id, exercise_count=len(payload.exercises),
                          additional_count=additional_count)

    def list_workouts(self, user_id: int) -> List[Dict[str, Any]]:
        out = []
        for w in self.repo.list_for_user(user_id):
            exercises = []
            for ex in self.repo.exercises_for(w.id):
                exercises.append({
                    "id": ex.id,
                    "exercise_name": ex.exercise_name,
                    "sets": ex.sets,
                    "reps": ex.reps,
                    "weight": ex.weight,
                    "set_type": ex.set_type,
                    "notes": ex.notes,
                    "additional_exercises": [a.additional_exercise_name for a in self.repo.additional_for(ex.id)],
                })
            out.append({
                "id": w.id,
                "exercise_date": w.exercise_date.isoformat(),
                "workout_type": w.workout_type,
                "muscle_group": w.muscle_group,
                "exercises": exercises,
            })
        return out

    def delete_workout(self, user_id: int, workout_id: int) -> None:
        workout = self.repo.get_owned(workout_id, user_id)
        if not workout:
            raise NotFound("Workout not found or not authorized")
        try:
            self.repo.delete_graph(workout)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("failed to delete workout", cause=e) from e


class PlanService:
    """Saved workout plan templates."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.PlanRepository(session)

    def save_plan(self, user_id: int, payload: schemas.PlanIn) -> Dict[str, Any]:
        """Store the plan and its exercise lines in one transaction."""
        if not payload.workout_type or not payload.target_muscle or payload.plan is None:
            raise InvalidInput("Invalid plan data")
        try:
            plan = self.repo.add_plan(user_id, payload.workout_type, payload.target_muscle)
            for position, ex in enumerate(payload.plan):
                self.repo.add_exercise(plan.id, position, ex.exercise_name, ex.sets, ex.reps, ex.notes)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("failed to save plan", cause=e) from e
        self.session.refresh(plan)
        return self._plan_meta(plan)

    @staticmethod
    def _plan_meta(plan: models.WorkoutPlan) -> Dict[str, Any]:
        return {
            "id": plan.id,
            "workout_type": plan.workout_type,
            "target_muscle": plan.target_muscle,
            "created_at": plan.created_at.isoformat(),
        }

    def list_plans(self, user_id: int) -> List[Dict[str, Any]]:
        out = []
        for plan in self.repo.list_for_user(user_id):
            meta = self._plan_meta(plan)
            meta["plan"] = [
                {"exercise_name": e.exercise_name, "sets": e.sets, "reps": e.reps, "notes": e.notes}
                for e in self.repo.exercises_for(plan.id)
            ]
            out.append(meta)
        return out


class ExerciseService:
    """Exercise-log documents for a single owner."""
    REQUIRED = ("exercise_name", "sets", "reps", "workout_type", "exercise_date")

    def __init__(self, doc_session: Session):
        self.repo = repositories.ExerciseRepository(doc_session)

    def create(self, owner: str, payload: schemas.ExerciseIn) -> Dict[str, Any]:
        if any(not getattr(payload, f) for f in self.REQUIRED):
            raise InvalidInput("Missing required fields")
        entry = documents.ExerciseEntry(
            user_id=owner,
            exercise_name=payload.exercise_name,
            sets=payload.sets,
            reps=payload.reps,
            weight=payload.weight,
            exercise_date=payload.exercise_date,
            workout_type=payload.workout_type,
            muscle_group=payload.muscle_group,
            set_type=payload.set_type,
            additional_exercises=list(payload.additional_exercises or []),
            notes=payload.notes,
            duration=payload.duration,
        )
        return self.repo.create(entry).to_document()

    def search(self, owner: str, **filters) -> List[Dict[str, Any]]:
        return [e.to_document() for e in self.repo.find(owner, **filters)]

    def distinct_names(self, owner: str) -> List[str]:
        return self.repo.distinct_names(owner)

    def delete(self, owner: str, entry_id: str) -> Dict[str, Any]:
        doc = self.repo.delete_owned(entry_id, owner)
        if doc is None:
            raise NotFound("Exercise not found or not authorized")
        return doc


class DashboardService:
    """Aggregates over the exercise log for the dashboard screen."""
    RECENT_LIMIT = 5

    def __init__(self, doc_session: Session):
        self.repo = repositories.ExerciseRepository(doc_session)

    @staticmethod
    def _totals(entries) -> Dict[str, Any]:
        return {
            "totalWorkouts": len(entries),
            "totalSets": sum(e.sets or 0 for e in entries),
            "totalWeight": sum(e.weight or 0 for e in entries),
        }

    def summary(self, owner: str, date_start: Optional[date] = None, date_end: Optional[date] = None,
                exercise_name: Optional[str] = None, stack_by: str = "workout_type",
                today: Optional[date] = None) -> Dict[str, Any]:
        """Build the dashboard payload.

        Overall metrics, progression, frequency and recent workouts honour
        the date range and exact `exercise_name` filter. Weekly (last 7
        days) and monthly (last 30 days) metrics keep the name filter but
        replace the date range with their own window.
        """
        today = today or date.today()
        # Load only what either the requested range or the 30-day window can use.
        window_start = today - timedelta(days=30)
        lower = min(date_start, window_start) if date_start is not None else None
        upper = max(date_end, today) if date_end is not None else None
        by_name = self.repo.find_for_summary(owner, exercise_name=exercise_name, date_from=lower, date_to=upper)
        matched = [
            e for e in by_name
            if (date_start is None or e.exercise_date >= date_start)
            and (date_end is None or e.exercise_date <= date_end)
        ]

        weights = [e.weight for e in matched if e.weight is not None]
        metrics = {
            "totalWorkouts": len(matched),
            "totalSets": sum(e.sets or 0 for e in matched),
            "totalReps": sum((e.sets or 0) * (e.reps or 0) for e in matched),
            "averageWeight": (sum(weights) / len(weights)) if weights else None,
            "totalDuration": sum(e.duration or 0 for e in matched),
        }

        def window(days: int):
            start = today - timedelta(days=days)
            return [e for e in by_name if start <= e.exercise_date <= today]

        progression: Dict[str, Optional[float]] = {}
        for e in matched:
            key = e.exercise_date.isoformat()
            best = progression.get(key)
            if key not in progression or (e.weight is not None and (best is None or e.weight > best)):
                progression[key] = e.weight

        group_field = "muscle_group" if stack_by == "muscle_group" else "workout_type"
        frequency: Dict[str, Dict[Any, int]] = {}
        for e in sorted(matched, key=lambda x: x.exercise_date):
            counts = frequency.setdefault(e.exercise_date.isoformat(), {})
            kind = getattr(e, group_field)
            counts[kind] = counts.get(kind, 0) + 1

        recent = [
            {k: doc[k] for k in ("id", "exercise_name", "sets", "reps", "weight", "exercise_date",
                                 "workout_type", "muscle_group", "duration")}
            for doc in (e.to_document() for e in matched[:self.RECENT_LIMIT])
        ]

        return {
            "metrics": metrics,
            "weeklyMetrics": self._totals(window(7)),
            "monthlyMetrics": self._totals(window(30)),
            "weightProgression": [{"date": d, "weight": w} for d, w in sorted(progression.items())],
            "workoutFrequency": [
                {"date": d, "types": [{"type": t, "count": c} for t, c in counts.items()]}
                for d, counts in sorted(frequency.items())
            ],
            "recentWorkouts": recent,
            "exercises": self.repo.distinct_names(owner),
        }


class DietPlanService:
    """Diet-plan previews (model generated) and saved plans."""
    def __init__(self, doc_session: Session, generator: Optional[DietPlanGenerator] = None):
        self.repo = repositories.DietPlanRepository(doc_session)
        self.generator = generator

    def preview(self, owner: str, prompt: Optional[str]) -> Dict[str, Any]:
        """Ask the model for a plan; nothing is stored."""
        if not prompt or not isinstance(prompt, str) or not prompt.strip():
            raise InvalidInput("Prompt is required")
        data = self.generator.generate(prompt)
        return {
            "user_id": owner,
            "date": data.get("date"),
            "meals": data.get("meals") or [],
            "notes": data.get("notes") or "",
            "prompt": prompt,
        }

    def save(self, owner: str, payload: schemas.DietPlanIn) -> Dict[str, Any]:
        if not payload.date or not payload.meals:
            raise InvalidInput("Date and meals are required")
        plan = documents.DietPlan(
            user_id=owner,
            date=payload.date,
            meals=[m.model_dump() for m in payload.meals],
            notes=payload.notes or "",
            prompt=payload.prompt or "",
        )
        return self.repo.create(plan).to_document()

    def list_plans(self, owner: str) -> List[Dict[str, Any]]:
        return [p.to_document() for p in self.repo.list_for_user(owner)]

    def delete(self, owner: str, plan_id: str) -> Dict[str, Any]:
        doc = self.repo.delete_owned(plan_id, owner)
        if doc is None:
            raise NotFound("Diet plan not found or unauthorized")
        return doc
