# plan_template.py
# =============================================================================
# 17-week run-walk to 15 km plan, five phases, ending with race day.
# Every entry is a fixed day offset from the plan start; generate_plan() is
# pure and returns the same sequence for the same start date.
# =============================================================================

from __future__ import annotations

from datetime import date, timedelta
from typing import List, NamedTuple, Optional, Sequence, Union

from plantracker.schemas import Intensity, WorkoutDayIn

PLAN_START = date(2026, 1, 2)
RACE_DAY_OFFSET = 120
TOTAL_WEEKS = 17
GOAL_DISTANCE_KM = 15
GOAL_EVENT = "Bosbeekse 15"

PHASES = [
    {"name": "Phase 1", "weeks": "1-4", "focus": "Habit + impact adaptation"},
    {"name": "Phase 2", "weeks": "5-8", "focus": "More continuous running + longer easy work"},
    {"name": "Phase 3", "weeks": "9-13", "focus": "Base fitness + gentle quality sessions"},
    {"name": "Phase 4", "weeks": "14-16", "focus": "Specific build to 15 km"},
    {"name": "Phase 5", "weeks": "17", "focus": "Taper - arrive fresh"},
]

WARMUP = "Warm-up: 5-8 min brisk walk + very easy jog"
COOLDOWN = "Cool-down: 5 min walk"

REST_DETAILS = "Rest or light walking. Recovery is when your body adapts and gets stronger."

STRENGTH_MINUTES = 30
STRENGTH_DETAILS = """20-35 min strength session. Pick 5-7 exercises, 2-3 sets of 8-12 reps:
• Box squat (sit to bench/chair)
• Romanian deadlift (light) or hip hinge
• Step-ups (low step)
• Glute bridge / hip thrust
• Calf raises (slow)
• Side plank
• Dead bug (core)
• Band walks (hip stability)

Keep it "easy-medium" at first. Consistency beats intensity."""

E, S, T = Intensity.EASY, Intensity.STEADY, Intensity.TEMPO


class PlanEntry(NamedTuple):
    offset: int
    title: str
    details: str
    phase: str
    week: int
    intensity: Intensity
    tags: Sequence[str]
    duration_min: Optional[float] = None
    distance_km: Optional[float] = None

    def to_input(self, start: date) -> WorkoutDayIn:
        return WorkoutDayIn(
            date=(start + timedelta(days=self.offset)).isoformat(),
            title=self.title,
            details=self.details,
            phase=self.phase,
            week=self.week,
            intensity=self.intensity,
            tags=list(self.tags),
            planned_duration_min=self.duration_min,
            planned_distance_km=self.distance_km,
        )


class Run(NamedTuple):
    title: str
    details: str
    intensity: Intensity
    tags: Sequence[str]
    duration_min: Optional[float] = None
    distance_km: Optional[float] = None


def _details(summary: str, main: str, note: str = "", warmup: str = WARMUP,
             cooldown: str = COOLDOWN) -> str:
    text = f"{summary}\n\n{warmup}\nMain: {main}\n{cooldown}"
    return f"{text}\n\n{note}" if note else text


def _rest(offset: int, week: int, phase: str) -> PlanEntry:
    return PlanEntry(offset, "Rest Day", REST_DETAILS, phase, week, Intensity.REST, ["rest"])


def _strength(offset: int, week: int, phase: str) -> PlanEntry:
    return PlanEntry(offset, "Strength Training", STRENGTH_DETAILS, phase, week,
                     Intensity.STRENGTH, ["strength"], STRENGTH_MINUTES)


def _run(offset: int, week: int, phase: str, run: Run) -> PlanEntry:
    return PlanEntry(offset, run.title, run.details, phase, week, run.intensity,
                     run.tags, run.duration_min, run.distance_km)


def _week(week: int, phase: str, run_a: Run, run_b: Run, long_run: Run,
          run_a_first: bool = False) -> List[PlanEntry]:
    """Standard week: rest, Run A, strength, Run B, rest, strength, long run."""
    base = (week - 1) * 7
    first = [_run(base, week, phase, run_a), _rest(base + 1, week, phase)] if run_a_first \
        else [_rest(base, week, phase), _run(base + 1, week, phase, run_a)]
    return first + [
        _strength(base + 2, week, phase),
        _run(base + 3, week, phase, run_b),
        _rest(base + 4, week, phase),
        _strength(base + 5, week, phase),
        _run(base + 6, week, phase, long_run),
    ]


def _easy(title: str, summary: str, main: str, note: str = "",
          duration: Optional[float] = None, distance: Optional[float] = None,
          tags: Sequence[str] = ("easy",)) -> Run:
    return Run(title, _details(summary, main, note), E, list(tags), duration, distance)


def _long(summary: str, main: str, note: str = "", duration: Optional[float] = None,
          distance: Optional[float] = None, title: str = "Long Run (Easy)",
          deload: bool = False) -> Run:
    tags = ["easy", "longrun", "deload"] if deload else ["easy", "longrun"]
    return Run(title, _details(summary, main, note), E, tags, duration, distance)


def _quality(title: str, intensity: Intensity, tag: str, summary: str, main: str,
             note: str = "", duration: Optional[float] = None,
             warmup: str = "Warm-up: 10 min easy", cooldown: str = "Cool-down: 5 min easy") -> Run:
    return Run(title, _details(summary, main, note, warmup, cooldown), intensity, [tag], duration)


# -----------------------------------------------------------------------------
# Phase 1 (weeks 1-4): easy run-walk, no speed, build consistency
# -----------------------------------------------------------------------------
def _phase_1() -> List[PlanEntry]:
    p = "Phase 1"
    return (
        _week(1, p,
              _easy("Run A (Easy)", "25 min total → 1 min run / 1 min walk",
                    "Alternate 1 min running / 1 min walking",
                    "Pace should feel almost too easy - you should be able to talk in full sentences.", 25),
              _easy("Run B (Easy)", "25 min total → 1 min run / 1 min walk",
                    "Alternate 1 min running / 1 min walking",
                    "Keep the same comfortable pace as Run A.", 25),
              _long("35 min total → 1/1 (or 2/1 if it feels easy)",
                    "Run-walk at your chosen ratio. If 1/1 feels too easy, try 2 min run / 1 min walk.",
                    'This is your first "long" run. Keep it conversational!', duration=35),
              run_a_first=True)
        + _week(2, p,
                _easy("Run A (Easy)", "28 min → 2/1 ratio", "2 min run / 1 min walk",
                      "Slightly longer than last week. You're building the habit!", 28),
                _easy("Run B (Easy)", "28 min → 2/1 ratio", "2 min run / 1 min walk", duration=28),
                _long("40 min → 2/1 ratio", "2 min run / 1 min walk throughout",
                      "Your body is adapting. Keep it easy!", duration=40))
        + _week(3, p,
                _easy("Run A (Easy)", "30 min → 3/1 ratio", "3 min run / 1 min walk",
                      "Longer run intervals now. Still conversational pace!", 30),
                _easy("Run B (Easy)", "30 min → 3/1 ratio", "3 min run / 1 min walk", duration=30),
                _long("45 min → 3/1 ratio", "3 min run / 1 min walk",
                      "Good progress! This is building your aerobic base.", duration=45))
        + _week(4, p,
                _easy("Run A (Easy) - Deload", "25-28 min → 3/1 ratio", "3 min run / 1 min walk",
                      "Deload week - slightly shorter to let your body recover and adapt.", 26,
                      tags=("easy", "deload")),
                _easy("Run B (Easy) - Deload", "25-28 min → 3/1 ratio", "3 min run / 1 min walk",
                      duration=26, tags=("easy", "deload")),
                _long("40 min → 3/1 ratio", "3 min run / 1 min walk",
                      "Recovery week complete! You should feel fresh for Phase 2.", duration=40,
                      title="Long Run (Easy) - Deload", deload=True))
    )


# -----------------------------------------------------------------------------
# Phase 2 (weeks 5-8): more continuous running, longer easy work, strides
# -----------------------------------------------------------------------------
def _phase_2() -> List[PlanEntry]:
    p = "Phase 2"
    return (
        _week(5, p,
              _easy("Run A (Easy)", "32 min → 4/1 ratio", "4 min run / 1 min walk",
                    "Phase 2 begins! Longer continuous running intervals.", 32),
              _easy("Run B (Easy + Strides)", "32 min easy + 4×15 sec slightly faster",
                    "4/1 run-walk ratio for about 25 min, then 4×15 sec slightly faster "
                    "(not sprinting!) with easy jog/walk recovery",
                    "First introduction of faster leg turnover!", 32),
              _long("50 min → 4/1 ratio", "4 min run / 1 min walk",
                    "Biggest long run yet! Stay patient and conversational.", duration=50))
        + _week(6, p,
                _easy("Run A (Easy)", "35 min → 5/1 ratio", "5 min run / 1 min walk",
                      "5 minutes of continuous running at a time now!", 35),
                _easy("Run B (Easy + Strides)", "35 min easy + 4×20 sec slightly faster",
                      "5/1 run-walk ratio, then 4×20 sec slightly faster with easy recovery",
                      duration=35),
                _long("55 min → 5/1 ratio", "5 min run / 1 min walk",
                      "Great endurance building here!", duration=55))
        + _week(7, p,
                _easy("Run A (Easy)", "38 min → 6/1 (or stay at 5/1 if needed)",
                      "6 min run / 1 min walk (or 5/1 if that feels better)",
                      "Listen to your body on the ratio choice.", 38),
                _easy("Run B (Easy)", "35-38 min easy", "Your chosen run-walk ratio", duration=36),
                _long("60 min → 6/1 ratio", "6 min run / 1 min walk",
                      "Your first hour-long run! This is a milestone.", duration=60))
        + _week(8, p,
                _easy("Run A (Easy) - Deload", "30-32 min easy", "Easy run-walk at comfortable ratio",
                      "Deload week - recovery before Phase 3.", 31, tags=("easy", "deload")),
                _easy("Run B (Easy) - Deload", "30-32 min easy", "Easy run-walk",
                      duration=31, tags=("easy", "deload")),
                _long("50-55 min easy", "Easy run-walk", "Phase 2 complete! Great foundation built.",
                      duration=52, title="Long Run (Easy) - Deload", deload=True))
    )


# -----------------------------------------------------------------------------
# Phase 3 (weeks 9-13): one light quality session a week, long run to 12 km
# -----------------------------------------------------------------------------
def _phase_3() -> List[PlanEntry]:
    p = "Phase 3"
    return (
        _week(9, p,
              _easy("Run A (Easy)", "40 min easy", "Continuous or run-walk as needed",
                    "Phase 3 - now we add some quality!", 40),
              _quality("Run B (Steady Blocks)", S, "steady",
                       "10 min easy + 3×(4 min steady / 2 min easy) + 5 min easy",
                       "3 blocks of 4 min at steady effort (RPE 6/10, short sentences) with 2 min easy between",
                       'First quality session! Steady means "comfortably challenging".', 33,
                       warmup="Warm-up: 10 min easy running"),
              _long("8 km easy (run-walk ok)", "8 km at conversational pace. Use run-walk if needed.",
                    "First distance-based long run!", distance=8))
        + _week(10, p,
                _easy("Run A (Easy)", "42 min easy", "Easy continuous running or run-walk", duration=42),
                _quality("Run B (Steady Blocks)", S, "steady",
                         "10 min easy + 4×(3 min steady / 2 min easy) + 5 min easy",
                         "4 blocks of 3 min steady (RPE 6/10) with 2 min easy", duration=35),
                _long("9 km easy", "9 km at easy, conversational pace", distance=9))
        + _week(11, p,
                _easy("Run A (Easy)", "45 min easy", "Easy running", duration=45),
                _quality("Run B (Steady Blocks)", S, "steady",
                         "10 min easy + 2×(8 min steady / 3 min easy) + 5 min easy",
                         "2 longer blocks of 8 min steady with 3 min easy recovery",
                         "Longer steady blocks now - building race fitness!", 37),
                _long("10 km easy", "10 km easy - double digits!",
                      "Congratulations on hitting 10k in training!", distance=10))
        + _week(12, p,
                _easy("Run A (Easy) - Deload", "35-40 min easy", "Easy running",
                      "Deload week before the final push.", 37, tags=("easy", "deload")),
                _easy("Run B (Easy + Strides) - Deload", "30-35 min easy + 4×20 sec relaxed faster strides",
                      "Easy running, then 4×20 sec at a relaxed faster pace (not sprinting)",
                      duration=32, tags=("easy", "deload")),
                _long("8-9 km easy", "8-9 km easy", distance=8.5,
                      title="Long Run (Easy) - Deload", deload=True))
        + _week(13, p,
                _easy("Run A (Easy)", "45 min easy", "Easy running", duration=45),
                _quality("Run B (Tempo)", T, "tempo",
                         "Option 1: 10 min easy + 15 min tempo + 10 min easy\n"
                         "Option 2 (easier): 3×5 min tempo with 2 min easy between",
                         "Choose your option. Tempo = RPE 7/10, controlled hard, 20-30 min sustainable",
                         "First real tempo work! This builds race confidence.", 35,
                         cooldown="Cool-down: 10 min easy"),
                _long("12 km easy", "12 km at easy pace",
                      "12k - you're really building toward 15k now!", distance=12))
    )


# -----------------------------------------------------------------------------
# Phase 4 (weeks 14-16): long run to 15-17 km, quality stays controlled
# -----------------------------------------------------------------------------
def _phase_4() -> List[PlanEntry]:
    p = "Phase 4"
    return (
        _week(14, p,
              _easy("Run A (Easy)", "45-50 min easy", "Easy running", "Phase 4 - final build phase!", 47),
              _quality("Run B (Steady Blocks)", S, "steady",
                       "10 min easy + 4×(5 min steady / 2 min easy) + 5 min easy",
                       "4 blocks of 5 min steady with 2 min recovery", duration=43),
              _long("13 km easy", "13 km at easy pace", "13k long run - so close to your goal!",
                    distance=13))
        + _week(15, p,
                _easy("Run A (Easy)", "50 min easy", "Easy running", duration=50),
                _quality("Run B (Tempo)", T, "tempo",
                         "Option 1: 10 min easy + 20 min tempo + 10 min easy\n"
                         "Option 2: 4×5 min tempo with 2 min easy",
                         "Tempo at RPE 7/10",
                         "20 minutes of tempo builds serious race readiness!", 40,
                         cooldown="Cool-down: 10 min easy"),
                _long("14-15 km easy (run-walk is fine)", "14-15 km at easy pace. Use run-walk if needed!",
                      "This is race distance! You CAN do 15k.", distance=14.5))
        + _week(16, p,
                _easy("Run A (Easy)", "45 min easy", "Easy running", "Peak week - controlled workload.", 45),
                _quality("Run B (Steady Blocks)", S, "steady",
                         "10 min easy + 6×(2 min steady / 2 min easy) + 5 min easy",
                         "6 short steady blocks to keep legs sharp", duration=39),
                _long("16-17 km easy (only if recovery is good; otherwise cap at 15 km)",
                      "Your longest run! Only go to 17k if you feel great. 15-16k is perfectly fine.",
                      "PEAK LONG RUN! After this, we taper.", distance=16))
    )


# -----------------------------------------------------------------------------
# Phase 5 (week 17): taper, then race day on day 120
# -----------------------------------------------------------------------------
RACE_DETAILS = f"""RACE DAY - {GOAL_EVENT}!

Pacing strategy:
• Km 1-3: VERY easy (slower than you think)
• Km 4-12: Steady, controlled
• Last 3 km: Only push if you still feel good

Run-walk on race day is totally acceptable:
• Example: 8-10 min run / 1 min walk from the start can feel amazing at 15 km

You've done the work. Trust your training. ENJOY IT!"""


def _phase_5() -> List[PlanEntry]:
    p, wk = "Phase 5", 17
    taper = ("easy", "deload")
    return [
        _rest(112, wk, p),
        _run(113, wk, p, _easy("Run A (Easy) - Taper", "35-40 min easy", "Easy running - enjoy this!",
                               "Taper week! Volume drops, freshness increases.", 37, tags=taper)),
        _rest(114, wk, p),
        _run(115, wk, p, _easy("Run B (Easy + Strides) - Taper",
                               "25-30 min easy + 4×20 sec relaxed faster strides",
                               "Short, easy running, then 4×20 sec relaxed fast to keep legs sharp",
                               duration=27, tags=taper)),
        _rest(116, wk, p),
        _run(117, wk, p, _long("10-12 km easy (~7 days before race)", "10-12 km nice and easy",
                               "Last longer effort before race day. Keep it controlled and confident.",
                               distance=11, title="Last Long Run - Taper", deload=True)),
        _rest(118, wk, p),
        _run(119, wk, p, Run("Easy Shakeout",
                             "20-25 min very easy\n\nJust a short, easy jog to keep legs loose. "
                             "Maybe include 4×15 sec strides.\n\nDay before race - stay relaxed!",
                             E, list(taper), 22)),
        PlanEntry(RACE_DAY_OFFSET, f"RACE DAY - {GOAL_EVENT}", RACE_DETAILS, p, wk, S, ["race"],
                  None, GOAL_DISTANCE_KM),
    ]


PLAN_TABLE: List[PlanEntry] = _phase_1() + _phase_2() + _phase_3() + _phase_4() + _phase_5()


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def _as_date(d: Union[date, str]) -> date:
    return date.fromisoformat(d) if isinstance(d, str) else d


def generate_plan(start: Union[date, str] = PLAN_START) -> List[WorkoutDayIn]:
    """Ordered plan entries, day offsets counted from start."""
    start = _as_date(start)
    return [entry.to_input(start) for entry in PLAN_TABLE]


def race_date(start: Union[date, str] = PLAN_START) -> date:
    return _as_date(start) + timedelta(days=RACE_DAY_OFFSET)


def week_number_for(day: Union[date, str], start: Union[date, str] = PLAN_START) -> int:
    """Plan week containing day; days before the start give week 0 or less.

    The taper week runs through race day, so the last days of the plan stay in week 17.
    """
    offset = (_as_date(day) - _as_date(start)).days
    if offset <= RACE_DAY_OFFSET:
        return min(offset // 7 + 1, TOTAL_WEEKS)
    return offset // 7 + 1


def days_until_race(today: Union[date, str, None] = None,
                    start: Union[date, str] = PLAN_START) -> int:
    today = _as_date(today) if today is not None else date.today()
    return (race_date(start) - today).days


def plan_metadata(start: Union[date, str] = PLAN_START) -> dict:
    start = _as_date(start)
    return {
        "start_date": start.isoformat(),
        "end_date": race_date(start).isoformat(),
        "total_weeks": TOTAL_WEEKS,
        "goal_distance_km": GOAL_DISTANCE_KM,
        "goal_event": GOAL_EVENT,
        "phases": PHASES,
    }
