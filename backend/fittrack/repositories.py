"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
workouts, saved plans, exercise-log entries, diet plans). Single-record
repositories commit their own writes. `WorkoutRepository` and
`PlanRepository` only add and flush rows: the calling service owns the
transaction so that a whole graph commits or rolls back together.
"""

from datetime import date
from typing import List, Optional, Sequence
from sqlmodel import Session, select, or_
from . import models, documents


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_username(self, username: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get_by_email(self, email: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get_by_identifier(self, identifier: str) -> Optional[models.User]:
        """Return the user whose username or email equals `identifier`."""
        stmt = select(models.User).where(
            or_(models.User.username == identifier, models.User.email == identifier)
        )
        return self.session.exec(stmt).first()

    def find_conflict(self, email: str, username: str, exclude_id: Optional[int] = None) -> Optional[models.User]:
        """Return another user already holding `email` or `username`."""
        stmt = select(models.User).where(
            or_(models.User.email == email, models.User.username == username)
        )
        if exclude_id is not None:
            stmt = stmt.where(models.User.id != exclude_id)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.User]:
        return self.session.exec(select(models.User).order_by(models.User.id)).all()


class WorkoutRepository:
    """Row writer and queries for the workout graph.

    Writes are flushed one row at a time so generated ids are available to
    child rows and rows reach the database in submission order.
    """
    def __init__(self, session: Session):
        self.session = session

    def _flush(self, row):
        self.session.add(row)
        self.session.flush()
        return row

    def add_header(self, user_id: int, exercise_date: date, workout_type: str, muscle_group: str) -> models.Workout:
        return self._flush(models.Workout(
            user_id=user_id,
            exercise_date=exercise_date,
            workout_type=workout_type,
            muscle_group=muscle_group,
        ))

    def add_exercise(self, workout_id: int, position: int, exercise_name: str, sets: int, reps: int,
                     weight: Optional[float], set_type: Optional[str], notes: Optional[str]) -> models.WorkoutExercise:
        return self._flush(models.WorkoutExercise(
            workout_id=workout_id,
            position=position,
            exercise_name=exercise_name,
            sets=sets,
            reps=reps,
            weight=weight,
            set_type=set_type,
            notes=notes or None,
        ))

    def add_additional(self, exercise_id: int, position: int, name: str) -> models.AdditionalExercise:
        return self._flush(models.AdditionalExercise(
            exercise_id=exercise_id,
            position=position,
            additional_exercise_name=name,
        ))

    def list_for_user(self, user_id: int) -> List[models.Workout]:
        """Return the user's workouts, most recent exercise date first."""
        stmt = (
            select(models.Workout)
            .where(models.Workout.user_id == user_id)
            .order_by(models.Workout.exercise_date.desc(), models.Workout.id.desc())
        )
        return self.session.exec(stmt).all()

    def exercises_for(self, workout_id: int) -> List[models.WorkoutExercise]:
        stmt = (
            select(models.WorkoutExercise)
            .where(models.WorkoutExercise.workout_id == workout_id)
            .order_by(models.WorkoutExercise.position, models.WorkoutExercise.id)
        )
        return self.session.exec(stmt).all()

    def additional_for(self, exercise_id: int) -> List[models.AdditionalExercise]:
        stmt = (
            select(models.AdditionalExercise)
            .where(models.AdditionalExercise.exercise_id == exercise_id)
            .order_by(models.AdditionalExercise.position, models.AdditionalExercise.id)
        )
        return self.session.exec(stmt).all()

    def get_owned(self, workout_id: int, user_id: int) -> Optional[models.Workout]:
        stmt = select(models.Workout).where(models.Workout.id == workout_id, models.Workout.user_id == user_id)
        return self.session.exec(stmt).first()

    def delete_graph(self, workout: models.Workout):
        """Delete a workout and its child rows, children first (no commit)."""
        for ex in self.exercises_for(workout.id):
            for extra in self.additional_for(ex.id):
                self.session.delete(extra)
            self.session.delete(ex)
        self.session.flush()
        self.session.delete(workout)
        self.session.flush()


class PlanRepository:
    """Saved workout plans and their exercise lines."""
    def __init__(self, session: Session):
        self.session = session

    def add_plan(self, user_id: int, workout_type: str, target_muscle: str) -> models.WorkoutPlan:
        plan = models.WorkoutPlan(user_id=user_id, workout_type=workout_type, target_muscle=target_muscle)
        self.session.add(plan)
        self.session.flush()
        return plan

    def add_exercise(self, plan_id: int, position: int, exercise_name: str, sets: Optional[int],
                     reps: Optional[int], notes: Optional[str]) -> models.WorkoutPlanExercise:
        row = models.WorkoutPlanExercise(
            plan_id=plan_id,
            position=position,
            exercise_name=exercise_name,
            sets=sets,
            reps=reps,
            notes=notes or "",
        )
        self.session.add(row)
        self.session.flush()
        return row

    def list_for_user(self, user_id: int) -> List[models.WorkoutPlan]:
        stmt = (
            select(models.WorkoutPlan)
            .where(models.WorkoutPlan.user_id == user_id)
            .order_by(models.WorkoutPlan.created_at.desc(), models.WorkoutPlan.id.desc())
        )
        return self.session.exec(stmt).all()

    def exercises_for(self, plan_id: int) -> List[models.WorkoutPlanExercise]:
        stmt = (
            select(models.WorkoutPlanExercise)
            .where(models.WorkoutPlanExercise.plan_id == plan_id)
            .order_by(models.WorkoutPlanExercise.position, models.WorkoutPlanExercise.id)
        )
        return self.session.exec(stmt).all()


class ExerciseRepository:
    """Exercise-log documents."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, entry: documents.ExerciseEntry) -> documents.ExerciseEntry:
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def find(self, user_id: str, exercise_name: Optional[str] = None, workout_type: Optional[str] = None,
             muscle_group: Optional[str] = None, set_type: Optional[str] = None,
             weight_min: Optional[float] = None, weight_max: Optional[float] = None,
             date_start: Optional[date] = None, date_end: Optional[date] = None) -> List[documents.ExerciseEntry]:
        """Return the user's entries matching every given filter, newest first.

        `exercise_name` is a case-insensitive substring match; the other
        text filters are exact. Ranges are inclusive.
        """
        E = documents.ExerciseEntry
        stmt = select(E).where(E.user_id == user_id)
        if exercise_name:
            stmt = stmt.where(E.exercise_name.ilike(f"%{exercise_name}%"))
        if workout_type:
            stmt = stmt.where(E.workout_type == workout_type)
        if muscle_group:
            stmt = stmt.where(E.muscle_group == muscle_group)
        if set_type:
            stmt = stmt.where(E.set_type == set_type)
        if weight_min is not None:
            stmt = stmt.where(E.weight >= weight_min)
        if weight_max is not None:
            stmt = stmt.where(E.weight <= weight_max)
        if date_start is not None:
            stmt = stmt.where(E.exercise_date >= date_start)
        if date_end is not None:
            stmt = stmt.where(E.exercise_date <= date_end)
        stmt = stmt.order_by(E.exercise_date.desc(), E.created_at.desc())
        return self.session.exec(stmt).all()

    def find_for_summary(self, user_id: str, exercise_name: Optional[str] = None,
                         date_from: Optional[date] = None, date_to: Optional[date] = None) -> List[documents.ExerciseEntry]:
        """Entries with exactly `exercise_name` inside `[date_from, date_to]`, newest first."""
        E = documents.ExerciseEntry
        stmt = select(E).where(E.user_id == user_id)
        if exercise_name:
            stmt = stmt.where(E.exercise_name == exercise_name)
        if date_from is not None:
            stmt = stmt.where(E.exercise_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(E.exercise_date <= date_to)
        stmt = stmt.order_by(E.exercise_date.desc(), E.created_at.desc())
        return self.session.exec(stmt).all()

    def distinct_names(self, user_id: str) -> List[str]:
        E = documents.ExerciseEntry
        stmt = select(E.exercise_name).where(E.user_id == user_id).distinct().order_by(E.exercise_name)
        return list(self.session.exec(stmt).all())

    def delete_owned(self, entry_id: str, user_id: str) -> Optional[dict]:
        """Delete the entry if `user_id` owns it.

        Returns the deleted document, or `None` when nothing matched.
        """
        entry = self.session.get(documents.ExerciseEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            return None
        doc = entry.to_document()
        self.session.delete(entry)
        self.session.commit()
        return doc


class DietPlanRepository:
    """Diet-plan documents."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, plan: documents.DietPlan) -> documents.DietPlan:
        self.session.add(plan)
        self.session.commit()
        self.session.refresh(plan)
        return plan

    def list_for_user(self, user_id: str) -> Sequence[documents.DietPlan]:
        D = documents.DietPlan
        stmt = select(D).where(D.user_id == user_id).order_by(D.created_at.desc())
        return self.session.exec(stmt).all()

    def delete_owned(self, plan_id: str, user_id: str) -> Optional[dict]:
        plan = self.session.get(documents.DietPlan, plan_id)
        if plan is None or plan.user_id != user_id:
            return None
        doc = plan.to_document()
        self.session.delete(plan)
        self.session.commit()
        return doc
