import argparse
import logging
import random
import sys
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

DAYS: Tuple[str, ...] = ("Sun", "Mon", "Tue", "Wed", "Thu")
DAY_COUNT = len(DAYS)
MAX_ATTEMPTS = 50

NO_VALID_DATA = "No valid data to schedule. Make sure teachers and classes exist and are linked by allocations."
BEST_EFFORT_HEADER = "No fully conflict-free timetable was found. Best result:"


class TimeSlot(NamedTuple):
    day_index: int
    period_index: int


@dataclass(frozen=True)
class ClassGroup:
    id: str
    name: str


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    color: str = ""


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str
    max_sessions_per_week: int
    specialty: str = ""
    unavailable_slots: FrozenSet[TimeSlot] = frozenset()


@dataclass(frozen=True)
class Allocation:
    id: str
    class_id: str
    subject_id: str
    teacher_id: str
    weekly_sessions: int


@dataclass(frozen=True)
class ScheduleItem:
    class_id: str
    subject_id: str
    teacher_id: str
    day_index: int
    period_index: int


@dataclass
class ScheduleResult:
    items: List[ScheduleItem]
    conflicts: List[str]
    success: bool
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class SessionUnit:
    """One placeable session expanded from an allocation."""

    allocation: Allocation
    teacher: Teacher


def _now_ms() -> int:
    return int(time.time() * 1000)


def count_unavailable(teacher: Teacher, periods_per_day: int) -> int:
    # Slots beyond the active period range do not reduce availability.
    return sum(1 for s in teacher.unavailable_slots if s.period_index < periods_per_day)


def sanitize_allocations(
    allocations: Iterable[Allocation],
    classes: Iterable[ClassGroup],
    teachers: Iterable[Teacher],
) -> List[Allocation]:
    class_ids = {c.id for c in classes}
    teacher_ids = {t.id for t in teachers}
    out: List[Allocation] = []
    for a in allocations:
        if a.class_id not in class_ids or a.teacher_id not in teacher_ids:
            logger.debug("dropping allocation %s: unknown class or teacher", a.id)
            continue
        out.append(a)
    return out


def check_feasibility(
    teachers: Iterable[Teacher],
    allocations: Sequence[Allocation],
    periods_per_day: int,
) -> List[str]:
    """
    Analytic per-teacher load check. Returns one message per violated rule;
    an empty list means no teacher is provably overcommitted.
    """
    assigned: Dict[str, int] = {}
    for a in allocations:
        assigned[a.teacher_id] = assigned.get(a.teacher_id, 0) + a.weekly_sessions

    conflicts: List[str] = []
    for t in teachers:
        sessions = assigned.get(t.id, 0)
        available = DAY_COUNT * periods_per_day - count_unavailable(t, periods_per_day)
        if sessions > t.max_sessions_per_week:
            conflicts.append(
                f"Teacher {t.name} exceeds the weekly maximum of sessions ({sessions}/{t.max_sessions_per_week})."
            )
        if sessions > available:
            conflicts.append(
                f"Teacher {t.name} is required for {sessions} sessions but only available in {available} slots."
            )
    return conflicts


def build_session_queue(allocations: Iterable[Allocation], teachers: Iterable[Teacher]) -> List[SessionUnit]:
    teacher_by_id = {t.id: t for t in teachers}
    queue: List[SessionUnit] = []
    for a in allocations:
        teacher = teacher_by_id.get(a.teacher_id)
        if teacher is None:
            continue
        queue.extend(SessionUnit(allocation=a, teacher=teacher) for _ in range(a.weekly_sessions))
    return queue


def order_session_queue(queue: Iterable[SessionUnit], periods_per_day: int) -> List[SessionUnit]:
    """Most constrained first: scarcest teachers, then the largest allocations."""
    queue = list(queue)
    scarcity: Dict[str, int] = {}
    for u in queue:
        if u.teacher.id not in scarcity:
            scarcity[u.teacher.id] = count_unavailable(u.teacher, periods_per_day)
    return sorted(
        queue,
        key=lambda u: (-scarcity[u.teacher.id], -u.allocation.weekly_sessions),
    )


def place_sessions(
    queue: Sequence[SessionUnit],
    periods_per_day: int,
    rng: random.Random,
    *,
    class_names: Optional[Dict[str, str]] = None,
    subject_names: Optional[Dict[str, str]] = None,
) -> Tuple[List[ScheduleItem], List[str]]:
    """
    One greedy pass over `queue` in the given order. Returns (placed items, conflicts).
    Earlier placements are never revisited.
    """
    class_names = class_names or {}
    subject_names = subject_names or {}

    placed: List[ScheduleItem] = []
    conflicts: List[str] = []

    # Occupancy lookups for this trial only.
    class_busy: Set[Tuple[str, int, int]] = set()
    teacher_busy: Set[Tuple[str, int, int]] = set()
    subject_days: Set[Tuple[str, str, int]] = set()

    all_slots = [TimeSlot(d, p) for d in range(DAY_COUNT) for p in range(periods_per_day)]

    for unit in queue:
        alloc = unit.allocation
        teacher = unit.teacher

        candidates = list(all_slots)
        rng.shuffle(candidates)
        # Soft preference: days where this class has no session of this subject yet come first.
        candidates.sort(key=lambda s: (alloc.class_id, alloc.subject_id, s.day_index) in subject_days)

        chosen: Optional[TimeSlot] = None
        for slot in candidates:
            d, p = slot
            if (alloc.class_id, d, p) in class_busy:
                continue
            if slot in teacher.unavailable_slots or (teacher.id, d, p) in teacher_busy:
                continue
            chosen = slot
            break

        if chosen is None:
            conflicts.append(
                f"Could not place a {subject_names.get(alloc.subject_id, alloc.subject_id)} session "
                f"for class {class_names.get(alloc.class_id, alloc.class_id)} with teacher {teacher.name}."
            )
            continue

        d, p = chosen
        placed.append(
            ScheduleItem(
                class_id=alloc.class_id,
                subject_id=alloc.subject_id,
                teacher_id=alloc.teacher_id,
                day_index=d,
                period_index=p,
            )
        )
        class_busy.add((alloc.class_id, d, p))
        teacher_busy.add((teacher.id, d, p))
        subject_days.add((alloc.class_id, alloc.subject_id, d))

    return placed, conflicts


def generate(
    classes: Sequence[ClassGroup],
    teachers: Sequence[Teacher],
    allocations: Sequence[Allocation],
    periods_per_day: int,
    *,
    subjects: Optional[Sequence[Subject]] = None,
    max_attempts: int = MAX_ATTEMPTS,
    seed: Optional[int] = None,
) -> ScheduleResult:
    """Build a weekly timetable.

    Steps:
      1. Drop allocations whose class or teacher no longer exists.
      2. Fail fast when any teacher is analytically overcommitted.
      3. Expand allocations into single sessions and order them hardest first.
      4. Run up to `max_attempts` greedy trials (trial 0 in priority order, the
         rest shuffled) and stop at the first one without conflicts.

    Returns:
      A new ScheduleResult. `success` is authoritative: an unsuccessful result
      may still carry the items of the best trial.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be a positive integer, got {max_attempts}")
    rng = random.Random(seed)

    valid = sanitize_allocations(allocations, classes, teachers)
    if not valid:
        logger.info("nothing to schedule (%d allocations, none valid)", len(allocations))
        return ScheduleResult(items=[], conflicts=[NO_VALID_DATA], success=False)

    validation_conflicts = check_feasibility(teachers, valid, periods_per_day)
    if validation_conflicts:
        logger.info("workload infeasible: %d violation(s)", len(validation_conflicts))
        return ScheduleResult(items=[], conflicts=validation_conflicts, success=False)

    queue = order_session_queue(build_session_queue(valid, teachers), periods_per_day)
    class_names = {c.id: c.name for c in classes}
    subject_names = {s.id: s.name for s in subjects or ()}

    best_items: List[ScheduleItem] = []
    best_conflicts: List[str] = []
    best_count: Optional[int] = None

    for attempt in range(max_attempts):
        if attempt == 0:
            attempt_queue = list(queue)
        else:
            attempt_queue = list(queue)
            rng.shuffle(attempt_queue)

        items, conflicts = place_sessions(
            attempt_queue,
            periods_per_day,
            rng,
            class_names=class_names,
            subject_names=subject_names,
        )
        logger.debug("attempt %d: placed %d/%d, %d conflict(s)", attempt, len(items), len(queue), len(conflicts))

        if not conflicts:
            logger.info("timetable generated on attempt %d (%d sessions)", attempt, len(items))
            return ScheduleResult(items=items, conflicts=[], success=True, timestamp=_now_ms())

        if best_count is None or len(conflicts) < best_count:
            best_count = len(conflicts)
            best_items = items
            best_conflicts = conflicts

    logger.info("no conflict-free timetable after %d attempt(s); best has %s conflict(s)", max_attempts, best_count)
    return ScheduleResult(
        items=best_items,
        conflicts=[BEST_EFFORT_HEADER, *best_conflicts],
        success=False,
        timestamp=_now_ms(),
    )


def _render_grid(title: str, grid: List[List[str]], days: Sequence[str], periods: Sequence[str]) -> str:
    # Pretty print as aligned columns
    col_widths = [max(len(periods[i]), max(len(grid[r][i]) for r in range(len(days)))) for i in range(len(periods))]
    day_width = max(len("Day"), max(len(d) for d in days))

    lines: List[str] = [title]
    header = " " * (day_width + 2) + "  ".join(periods[i].ljust(col_widths[i]) for i in range(len(periods)))
    lines.append(header.rstrip())
    for d, day in enumerate(days):
        row = day.ljust(day_width) + "  " + "  ".join(grid[d][i].ljust(col_widths[i]) for i in range(len(periods)))
        lines.append(row.rstrip())
    return "\n".join(lines)


def _period_labels(periods_per_day: int) -> List[str]:
    return [f"P{i + 1}" for i in range(periods_per_day)]


def format_class_timetable(
    *,
    class_group: ClassGroup,
    items: Iterable[ScheduleItem],
    periods_per_day: int,
    subject_names: Dict[str, str],
    teacher_names: Dict[str, str],
) -> str:
    # Build grid: rows=days, cols=periods
    grid = [["-"] * periods_per_day for _ in range(DAY_COUNT)]
    for it in items:
        if it.class_id != class_group.id or it.period_index >= periods_per_day:
            continue
        subj = subject_names.get(it.subject_id, it.subject_id)
        grid[it.day_index][it.period_index] = f"{subj}({teacher_names.get(it.teacher_id, it.teacher_id)})"
    return _render_grid(f"Class: {class_group.name}", grid, DAYS, _period_labels(periods_per_day))


def format_teacher_timetable(
    *,
    teacher: Teacher,
    items: Iterable[ScheduleItem],
    periods_per_day: int,
    class_names: Dict[str, str],
    subject_names: Dict[str, str],
) -> str:
    grid = [["-"] * periods_per_day for _ in range(DAY_COUNT)]
    for s in teacher.unavailable_slots:
        if s.day_index < DAY_COUNT and s.period_index < periods_per_day:
            grid[s.day_index][s.period_index] = "x"
    for it in items:
        if it.teacher_id != teacher.id or it.period_index >= periods_per_day:
            continue
        cls = class_names.get(it.class_id, it.class_id)
        grid[it.day_index][it.period_index] = f"{cls}:{subject_names.get(it.subject_id, it.subject_id)}"
    return _render_grid(f"Teacher: {teacher.name}", grid, DAYS, _period_labels(periods_per_day))


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {n}")
    return n


def main(argv: Optional[List[str]] = None) -> int:
    from timetable_schema import ScheduleResultOutput, TimetableInput

    parser = argparse.ArgumentParser(description="Weekly school timetable generator (randomized greedy placement).")
    parser.add_argument("--input", required=True, help="Path to the school data JSON (backup) file.")
    parser.add_argument("--periods_per_day", type=int, default=None, help="Override periodsPerDay from the input.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible run.")
    parser.add_argument("--max_attempts", type=_positive_int, default=MAX_ATTEMPTS, help="Number of placement trials.")
    parser.add_argument("--print_teachers", action="store_true", help="Also print timetable per teacher.")
    parser.add_argument("--output", default=None, help="Write the result JSON to this path.")
    parser.add_argument("--verbose", action="store_true", help="Log search progress to stderr.")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s %(message)s")

    try:
        data = TimetableInput.load_file(args.input)
        if args.periods_per_day is not None:
            data = TimetableInput.model_validate({**data.to_json_dict(), "periodsPerDay": args.periods_per_day})
    except (OSError, ValueError) as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2

    engine_kwargs = data.to_engine()
    result = generate(**engine_kwargs, max_attempts=args.max_attempts, seed=args.seed)

    if args.output:
        ScheduleResultOutput.from_result(result).save_file(args.output)

    print(f"Status: {'SUCCESS' if result.success else 'FAILED'}")
    if result.conflicts:
        print("Conflicts:")
        for c in result.conflicts:
            print(f"  - {c}")
    print()
    if not result.items:
        return 0 if result.success else 1

    periods_per_day = data.periods_per_day
    class_names = {c.id: c.name for c in data.classes}
    subject_names = {s.id: s.name for s in data.subjects}
    teacher_names = {t.id: t.name for t in data.teachers}

    # Print class timetables
    for cg in engine_kwargs["classes"]:
        print(format_class_timetable(
            class_group=cg,
            items=result.items,
            periods_per_day=periods_per_day,
            subject_names=subject_names,
            teacher_names=teacher_names,
        ))
        print()

    if args.print_teachers:
        for teacher in engine_kwargs["teachers"]:
            print(format_teacher_timetable(
                teacher=teacher,
                items=result.items,
                periods_per_day=periods_per_day,
                class_names=class_names,
                subject_names=subject_names,
            ))
            print()

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
