"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable. Fields that existing
clients may omit are optional here so that the services can answer with
the same messages they always did ("All fields are required", ...)
instead of a generic validation error.
"""

import datetime as dt
from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SignupIn(BaseModel):
    """Payload for account creation."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginIn(BaseModel):
    """`identifier` may be either the username or the email address."""
    identifier: Optional[str] = None
    password: Optional[str] = None


class ResetRequestIn(BaseModel):
    email: Optional[str] = None


class ResetCodeIn(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None


class ResetPasswordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    code: Optional[str] = None
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class ChangePasswordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class ProfileUpdateIn(BaseModel):
    email: Optional[str] = None
    username: Optional[str] = None


class WorkoutExerciseIn(BaseModel):
    """One exercise of a logged workout."""
    exercise_name: str = Field(min_length=1)
    sets: int = Field(gt=0)
    reps: int = Field(gt=0)
    weight: Optional[float] = None
    set_type: str
    notes: Optional[str] = None
    additional_exercises: List[str] = Field(default_factory=list)


class WorkoutIn(BaseModel):
    """A workout to be saved as one header plus its exercises.

    `exercises` is optional at the schema level; a missing or empty list
    is rejected by `WorkoutService` before any database work.
    """
    exercise_date: date
    workout_type: str = Field(min_length=1)
    muscle_group: str
    exercises: Optional[List[WorkoutExerciseIn]] = None


class ExerciseIn(BaseModel):
    """An exercise-log entry. Required fields are checked by the service."""
    exercise_name: Optional[str] = None
    sets: Optional[int] = None
    reps: Optional[int] = None
    weight: Optional[float] = None
    exercise_date: Optional[date] = None
    workout_type: Optional[str] = None
    muscle_group: Optional[str] = None
    set_type: Optional[str] = None
    additional_exercises: Optional[List[str]] = None
    notes: Optional[str] = None
    duration: Optional[float] = None


class PlanExerciseIn(BaseModel):
    exercise_name: str
    sets: Optional[int] = None
    reps: Optional[int] = None
    notes: Optional[str] = None


class PlanIn(BaseModel):
    """A workout plan template: meta fields plus its exercise lines."""
    workout_type: Optional[str] = None
    target_muscle: Optional[str] = None
    plan: Optional[List[PlanExerciseIn]] = None


class MealIn(BaseModel):
    meal_time: str
    items: List[Any] = Field(default_factory=list)


class DietPromptIn(BaseModel):
    prompt: Optional[str] = None


class DietPlanIn(BaseModel):
    date: Optional[dt.date] = None
    meals: Optional[List[MealIn]] = None
    notes: Optional[str] = None
    prompt: Optional[str] = None
