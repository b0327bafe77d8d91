"""Document-store collections.

The exercise log and diet plans are self-contained documents: nested
arrays are stored in JSON columns and every write touches exactly one
record. They live in their own database (see `fittrack.database`), so
these tables are never created in the relational store.
"""

import uuid
import datetime as dt
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def new_document_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExerciseEntry(SQLModel, table=True):
    """A single logged exercise, owned by `user_id`."""
    __tablename__ = "exercise_log"

    id: str = Field(default_factory=new_document_id, primary_key=True)
    user_id: str = Field(index=True)
    exercise_name: str = Field(index=True)
    sets: int
    reps: int
    weight: Optional[float] = None
    exercise_date: date = Field(index=True)
    workout_type: str
    muscle_group: Optional[str] = None
    set_type: Optional[str] = None
    additional_exercises: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    notes: Optional[str] = None
    duration: Optional[float] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user_id,
            "exercise_name": self.exercise_name,
            "sets": self.sets,
            "reps": self.reps,
            "weight": self.weight,
            "exercise_date": self.exercise_date.isoformat(),
            "workout_type": self.workout_type,
            "muscle_group": self.muscle_group,
            "set_type": self.set_type,
            "additional_exercises": list(self.additional_exercises or []),
            "notes": self.notes,
            "duration": self.duration,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class DietPlan(SQLModel, table=True):
    """A saved daily diet plan.

    `meals` holds a list of `{"meal_time": ..., "items": [...]}` objects;
    items are kept verbatim (plain names or the richer objects produced by
    the diet-plan generator).
    """
    __tablename__ = "diet_plans"

    id: str = Field(default_factory=new_document_id, primary_key=True)
    user_id: str = Field(index=True)
    date: dt.date
    meals: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    notes: str = ""
    prompt: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "meals": list(self.meals or []),
            "notes": self.notes,
            "prompt": self.prompt,
            "created_at": self.created_at.isoformat(),
        }


DOCUMENT_TABLES = [ExerciseEntry, DietPlan]
