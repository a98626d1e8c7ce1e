import json
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from timetable_schema import ScheduleResultOutput, TimetableInput
from timetable_server.config import settings
from timetable_server.logging_setup import setup_logging
from timetable_solver import NO_VALID_DATA, check_feasibility, generate, sanitize_allocations

setup_logging(environment=settings.environment)
logger = logging.getLogger(__name__)

app = FastAPI(title="Timetable Generator API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class FeasibilityReport(BaseModel):
    feasible: bool
    conflicts: List[str]


def _checked_input(request: TimetableInput) -> Dict[str, Any]:
    try:
        request.validate_references()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return request.to_engine()


@app.get("/")
async def read_root():
    return {"message": "Timetable Generator API"}


@app.get("/app_initial_data")
async def get_app_initial_data():
    """Returns the sample school data document shipped with the project."""
    sample_file_path = settings.sample_data_path
    if not sample_file_path.is_file():
        raise HTTPException(status_code=404, detail=f"sample data not found at {sample_file_path}")
    with sample_file_path.open(encoding="utf-8") as f:
        return json.load(f)


# Plain `def`: generation is CPU-bound, FastAPI runs it in the threadpool.
@app.post("/generate", response_model=ScheduleResultOutput, response_model_by_alias=True)
def generate_endpoint(request: TimetableInput):
    kwargs = _checked_input(request)
    logger.info(
        "generate: %d classes, %d teachers, %d allocations, %d periods/day",
        len(kwargs["classes"]),
        len(kwargs["teachers"]),
        len(kwargs["allocations"]),
        kwargs["periods_per_day"],
    )
    result = generate(**kwargs, max_attempts=settings.max_attempts)
    return ScheduleResultOutput.from_result(result)


@app.post("/validate", response_model=FeasibilityReport)
def validate_endpoint(request: TimetableInput):
    kwargs = _checked_input(request)
    valid = sanitize_allocations(kwargs["allocations"], kwargs["classes"], kwargs["teachers"])
    if not valid:
        return FeasibilityReport(feasible=False, conflicts=[NO_VALID_DATA])
    conflicts = check_feasibility(kwargs["teachers"], valid, kwargs["periods_per_day"])
    return FeasibilityReport(feasible=not conflicts, conflicts=conflicts)
