"""SQLModel tables for the relational store.

Accounts, logged workouts and saved workout plans live here. Each class
maps to a table; child rows carry an explicit `position` so reads return
them in the order they were submitted.
"""

from typing import List, Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username` / `email`: unique login identifiers
    - `password_hash`: hashed password string (never store plaintext)
    - `reset_code` / `reset_code_expires`: pending password-reset code
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    is_admin: bool = False
    reset_code: Optional[str] = None
    reset_code_expires: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Workout(SQLModel, table=True):
    """Header row of a logged workout."""
    __tablename__ = "workouts"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    exercise_date: date
    workout_type: str
    muscle_group: str
    created_at: datetime = Field(default_factory=_utcnow)
    exercises: List["WorkoutExercise"] = Relationship(back_populates="workout")


class WorkoutExercise(SQLModel, table=True):
    """One exercise inside a `Workout`."""
    __tablename__ = "exercises"

    id: Optional[int] = Field(default=None, primary_key=True)
    workout_id: int = Field(foreign_key="workouts.id", index=True)
    position: int = 0
    exercise_name: str
    sets: int
    reps: int
    weight: Optional[float] = None
    set_type: Optional[str] = None
    notes: Optional[str] = None
    workout: Optional[Workout] = Relationship(back_populates="exercises")
    additional_exercises: List["AdditionalExercise"] = Relationship(back_populates="exercise")


class AdditionalExercise(SQLModel, table=True):
    """Superset/alternate exercise name attached to a `WorkoutExercise`."""
    __tablename__ = "additional_exercises"

    id: Optional[int] = Field(default=None, primary_key=True)
    exercise_id: int = Field(foreign_key="exercises.id", index=True)
    position: int = 0
    additional_exercise_name: str
    exercise: Optional[WorkoutExercise] = Relationship(back_populates="additional_exercises")


class WorkoutPlan(SQLModel, table=True):
    """A saved workout plan template."""
    __tablename__ = "workout_plans"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    workout_type: str
    target_muscle: str
    created_at: datetime = Field(default_factory=_utcnow)
    exercises: List["WorkoutPlanExercise"] = Relationship(back_populates="plan")


class WorkoutPlanExercise(SQLModel, table=True):
    """An exercise line of a `WorkoutPlan`."""
    __tablename__ = "workout_plan_exercises"

    id: Optional[int] = Field(default=None, primary_key=True)
    plan_id: int = Field(foreign_key="workout_plans.id", index=True)
    position: int = 0
    exercise_name: str
    sets: Optional[int] = None
    reps: Optional[int] = None
    notes: str = ""
    plan: Optional[WorkoutPlan] = Relationship(back_populates="exercises")


RELATIONAL_TABLES = [User, Workout, WorkoutExercise, AdditionalExercise, WorkoutPlan, WorkoutPlanExercise]
