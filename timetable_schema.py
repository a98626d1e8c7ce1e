from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from timetable_solver import (
    DAY_COUNT,
    Allocation,
    ClassGroup,
    ScheduleResult,
    Subject,
    Teacher,
    TimeSlot,
)

BACKUP_VERSION = 2
MIN_PERIODS_PER_DAY = 4
MAX_PERIODS_PER_DAY = 12
DEFAULT_PERIODS_PER_DAY = 7
DEFAULT_MAX_SESSIONS_PER_WEEK = 24
DEFAULT_SUBJECT_COLOR = "#3B82F6"


def _strip_non_empty(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("must be a non-empty string")
    return v


class _Entity(BaseModel):
    # JSON documents use camelCase (classId, weeklySessions, ...); Python code uses snake_case.
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SlotConfig(_Entity):
    day_index: int
    period_index: int

    @field_validator("day_index", "period_index")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be a non-negative integer")
        return v

    def to_slot(self) -> TimeSlot:
        return TimeSlot(self.day_index, self.period_index)


class ClassConfig(_Entity):
    id: str
    name: str

    @field_validator("id", "name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _strip_non_empty(v)


class SubjectConfig(_Entity):
    id: str
    name: str
    color: Optional[str] = DEFAULT_SUBJECT_COLOR

    @field_validator("id", "name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _strip_non_empty(v)

    @field_validator("color")
    @classmethod
    def _color_default(cls, v: Optional[str]) -> str:
        # Older backups stored subjects without a color.
        return (v or "").strip() or DEFAULT_SUBJECT_COLOR


class TeacherConfig(_Entity):
    id: str
    name: str
    specialty: Optional[str] = ""
    # Hard constraint: max sessions/week for this teacher (across all classes)
    max_sessions_per_week: int = DEFAULT_MAX_SESSIONS_PER_WEEK
    # Hard constraint: teacher cannot teach in these slots
    unavailable_slots: List[SlotConfig] = Field(default_factory=list)
    # Display only
    color: Optional[str] = None

    @field_validator("id", "name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _strip_non_empty(v)

    @field_validator("specialty")
    @classmethod
    def _specialty_clean(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("max_sessions_per_week")
    @classmethod
    def _max_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("unavailable_slots", mode="before")
    @classmethod
    def _slots_default(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("unavailable_slots")
    @classmethod
    def _slots_dedupe(cls, v: List[SlotConfig]) -> List[SlotConfig]:
        # de-dupe preserve order
        seen = set()
        uniq: List[SlotConfig] = []
        for s in v:
            key = (s.day_index, s.period_index)
            if key in seen:
                continue
            seen.add(key)
            uniq.append(s)
        return uniq

    def to_teacher(self) -> Teacher:
        return Teacher(
            id=self.id,
            name=self.name,
            specialty=self.specialty,
            max_sessions_per_week=self.max_sessions_per_week,
            unavailable_slots=frozenset(s.to_slot() for s in self.unavailable_slots),
        )


class AllocationConfig(_Entity):
    id: str
    class_id: str
    subject_id: str
    teacher_id: str
    weekly_sessions: int

    @field_validator("id", "class_id", "subject_id", "teacher_id")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _strip_non_empty(v)

    @field_validator("weekly_sessions")
    @classmethod
    def _sessions_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    def to_allocation(self) -> Allocation:
        return Allocation(
            id=self.id,
            class_id=self.class_id,
            subject_id=self.subject_id,
            teacher_id=self.teacher_id,
            weekly_sessions=self.weekly_sessions,
        )


class TimetableInput(BaseModel):
    # Unknown top-level keys are ignored so backups written by other versions still restore.
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    version: int = BACKUP_VERSION
    timestamp: Optional[int] = None
    periods_per_day: int = DEFAULT_PERIODS_PER_DAY
    classes: List[ClassConfig] = Field(default_factory=list)
    subjects: List[SubjectConfig] = Field(default_factory=list)
    teachers: List[TeacherConfig] = Field(default_factory=list)
    allocations: List[AllocationConfig] = Field(default_factory=list)

    @field_validator("periods_per_day")
    @classmethod
    def _periods_in_range(cls, v: int) -> int:
        if v < MIN_PERIODS_PER_DAY or v > MAX_PERIODS_PER_DAY:
            raise ValueError(f"must be between {MIN_PERIODS_PER_DAY} and {MAX_PERIODS_PER_DAY}")
        return v

    @model_validator(mode="after")
    def _unique_ids(self) -> "TimetableInput":
        for label, items in (
            ("class", self.classes),
            ("subject", self.subjects),
            ("teacher", self.teachers),
            ("allocation", self.allocations),
        ):
            ids = [x.id for x in items]
            if len(set(ids)) != len(ids):
                raise ValueError(f"{label} ids must be unique")
        return self

    def validate_references(self) -> None:
        """
        Cross-field validation that depends on the weekly grid.
        Raises ValueError with a readable message.

        Allocations pointing at unknown classes/teachers are NOT rejected here:
        the generator drops them, so a restored backup with stale rows still works.
        """
        for t in self.teachers:
            for s in t.unavailable_slots:
                if s.day_index >= DAY_COUNT:
                    raise ValueError(
                        f"teacher '{t.name}': unavailableSlots.dayIndex {s.day_index} is outside the "
                        f"{DAY_COUNT}-day week"
                    )

    def to_engine(self) -> Dict[str, Any]:
        """Keyword arguments for `timetable_solver.generate`."""
        return {
            "classes": [ClassGroup(id=c.id, name=c.name) for c in self.classes],
            "teachers": [t.to_teacher() for t in self.teachers],
            "allocations": [a.to_allocation() for a in self.allocations],
            "periods_per_day": self.periods_per_day,
            "subjects": [Subject(id=s.id, name=s.name, color=s.color) for s in self.subjects],
        }

    def new_backup(self) -> "TimetableInput":
        """Copy stamped with the current backup version and time, ready to save."""
        return self.model_copy(update={"version": BACKUP_VERSION, "timestamp": int(time.time() * 1000)})

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> "TimetableInput":
        p = Path(path)
        data = json.loads(p.read_text(encoding="utf-8"))
        try:
            obj = cls.model_validate(data)
        except ValidationError as e:
            # Re-raise with a cleaner message for CLI usage
            raise ValueError(str(e)) from e
        obj.validate_references()
        return obj

    def to_json_dict(self) -> Dict[str, Any]:
        # Keep output close to the input shape (omit Nones where possible)
        return self.model_dump(by_alias=True, exclude_none=True)

    def save_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.write_text(json.dumps(self.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class ScheduleItemOutput(_Entity):
    class_id: str
    subject_id: str
    teacher_id: str
    day_index: int
    period_index: int


class ScheduleResultOutput(_Entity):
    items: List[ScheduleItemOutput] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    success: bool = False
    timestamp: Optional[int] = None

    @classmethod
    def from_result(cls, result: ScheduleResult) -> "ScheduleResultOutput":
        return cls(
            items=[
                ScheduleItemOutput(
                    class_id=i.class_id,
                    subject_id=i.subject_id,
                    teacher_id=i.teacher_id,
                    day_index=i.day_index,
                    period_index=i.period_index,
                )
                for i in result.items
            ],
            conflicts=list(result.conflicts),
            success=result.success,
            timestamp=result.timestamp,
        )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def save_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.write_text(json.dumps(self.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
