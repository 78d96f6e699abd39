"""
api_server.py - FastAPI Backend for the Roster Calendar Service
================================================================

Thin HTTP layer over the roster store and calendar builder.

Endpoints:
- POST /api/roster/text - Ingest roster text, get ingest outcome + change summary
- GET /api/roster/{id} - Stored versions for a roster id
- GET /api/roster/{id}/calendar.ics - Full calendar feed
- GET /api/roster/{id}/public.ics - Busy/Free calendar feed
- GET /api/roster/{id}/value - Paid hours and value at the pilot's pay rate
- GET /api/airports/{code} - Airport timezone lookup

Usage:
    uvicorn api.api_server:app --reload --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

import pytz
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from core import (
    ServiceConfig, AirportTimezoneLookup, CalendarEventBuilder, RosterStore,
    JsonFilePersistence, PilotDirectory, calculate_roster_value,
)
from core.notifier import build_change_summary, build_subject
from models.data_models import Employee
from parsers.roster_parser import RosterTextParser

# ============================================================================
# SERVICE WIRING
# ============================================================================

config = ServiceConfig.from_env()

logging.basicConfig(
    level=config.log_level,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

timezone_lookup = AirportTimezoneLookup.from_csv(
    config.airport_timezone_csv,
    default_timezone=config.calendar.default_timezone,
)
builder = CalendarEventBuilder(timezone_lookup, config.calendar)
store = RosterStore(
    persistence=JsonFilePersistence.from_config(config.store),
    parser=RosterTextParser(config.parser),
)
directory = PilotDirectory.from_config(config.pilot_directory)

# ============================================================================
# FASTAPI APP INITIALIZATION
# ============================================================================

app = FastAPI(
    title="Roster Calendar API",
    description="Crew roster text to timezone-correct calendar feeds",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"

# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class RosterTextRequest(BaseModel):
    text: str


class EmployeeResponse(BaseModel):
    name: Optional[str] = None
    staff_no: Optional[str] = None
    category: Optional[str] = None
    base: Optional[str] = None
    line: Optional[str] = None


class IngestResponse(BaseModel):
    roster_id: str
    is_new: bool
    updated: bool
    period_key: Optional[str] = None
    employee: EmployeeResponse
    entry_count: int
    flight_count: int
    duty_period_count: int
    subject: str
    change_summary: str


class RosterVersionResponse(BaseModel):
    period_key: Optional[str] = None
    bid_period: Optional[str] = None
    period_start: Optional[str] = None  # ISO date
    period_end: Optional[str] = None    # ISO date
    entry_count: int


class RosterResponse(BaseModel):
    roster_id: str
    employee: EmployeeResponse
    versions: List[RosterVersionResponse]


class RosterValueResponse(BaseModel):
    roster_id: str
    pay_rate: float
    period_key: Optional[str] = None
    total_paid_hours: float
    total_value: float


class AirportResponse(BaseModel):
    code: str
    timezone: str
    utc_offset_hours: Optional[float] = None  # Current UTC offset (accounts for DST)
    australian: bool


def _employee_response(employee: Optional[Employee]) -> EmployeeResponse:
    employee = employee or Employee()
    return EmployeeResponse(**employee.to_dict())


def _rosters_or_404(roster_id: str):
    rosters = store.get_rosters(roster_id)
    if not rosters:
        raise HTTPException(status_code=404, detail="Roster not found")
    return rosters


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "status": "ok",
        "service": "Roster Calendar API",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "rosters": len(store.list_roster_ids()),
        "timestamp": datetime.now().isoformat()
    }


@app.post("/api/roster/text", response_model=IngestResponse)
async def ingest_roster_text(request: RosterTextRequest):
    """
    Ingest one roster text dump.

    A duplicate returns is_new=false; a revised bid period returns
    updated=true with the day-level changes against the replaced version.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Roster text is empty")

    try:
        result = store.ingest(request.text)
    except Exception as e:
        logger.exception("Roster ingest failed")
        raise HTTPException(status_code=500, detail=f"Ingest failed: {str(e)}")

    roster = result.roster
    return IngestResponse(
        roster_id=result.roster_id,
        is_new=result.is_new,
        updated=result.updated,
        period_key=result.period_key,
        employee=_employee_response(roster.employee),
        entry_count=len(roster.entries),
        flight_count=len(roster.flights),
        duty_period_count=len(roster.duty_patterns),
        subject=build_subject(roster),
        change_summary=build_change_summary(roster, result.previous_roster, result.is_new),
    )


@app.get("/api/roster/{roster_id}", response_model=RosterResponse)
async def get_roster(roster_id: str):
    rosters = _rosters_or_404(roster_id)
    versions = [
        RosterVersionResponse(
            period_key=r.period_key,
            bid_period=r.summary.bid_period,
            period_start=r.summary.period_start.isoformat() if r.summary.period_start else None,
            period_end=r.summary.period_end.isoformat() if r.summary.period_end else None,
            entry_count=len(r.entries),
        )
        for r in rosters
    ]
    return RosterResponse(
        roster_id=roster_id,
        employee=_employee_response(store.get_employee(roster_id)),
        versions=versions,
    )


@app.get("/api/roster/{roster_id}/calendar.ics")
async def get_full_calendar(roster_id: str):
    rosters = _rosters_or_404(roster_id)
    pay_rate = directory.get_pay_rate(roster_id)
    try:
        body = builder.generate_ics_for_rosters(rosters, pay_rate)
    except Exception as e:
        logger.exception(f"Calendar generation failed for {roster_id}")
        raise HTTPException(status_code=500, detail=f"Calendar generation failed: {str(e)}")
    return Response(content=body, media_type=ICS_MEDIA_TYPE)


@app.get("/api/roster/{roster_id}/public.ics")
async def get_public_calendar(roster_id: str):
    rosters = _rosters_or_404(roster_id)
    try:
        body = builder.generate_public_ics_for_rosters(rosters)
    except Exception as e:
        logger.exception(f"Public calendar generation failed for {roster_id}")
        raise HTTPException(status_code=500, detail=f"Calendar generation failed: {str(e)}")
    return Response(content=body, media_type=ICS_MEDIA_TYPE)


@app.get("/api/roster/{roster_id}/value", response_model=List[RosterValueResponse])
async def get_roster_value(roster_id: str):
    rosters = _rosters_or_404(roster_id)
    pay_rate = directory.get_pay_rate(roster_id)
    if pay_rate is None:
        raise HTTPException(status_code=404, detail="No pay rate on file")

    results = []
    for roster in rosters:
        value = calculate_roster_value(roster, pay_rate, config.calendar.dpc_ratio)
        results.append(RosterValueResponse(
            roster_id=roster_id,
            pay_rate=pay_rate,
            period_key=roster.period_key,
            total_paid_hours=round(value.total_paid_minutes / 60.0, 2),
            total_value=value.total_value,
        ))
    return results


# ============================================================================
# AIRPORT ENDPOINTS
# ============================================================================

@app.get("/api/airports/{iata_code}", response_model=AirportResponse)
async def get_airport(iata_code: str):
    code = iata_code.strip().upper()
    if len(code) != 3:
        raise HTTPException(status_code=400, detail="Airport code must be 3 characters")

    zone = timezone_lookup(code)
    try:
        now = datetime.now(pytz.timezone(zone))
        utc_offset = now.utcoffset().total_seconds() / 3600
    except pytz.UnknownTimeZoneError:
        utc_offset = None

    return AirportResponse(
        code=code,
        timezone=zone,
        utc_offset_hours=utc_offset,
        australian=timezone_lookup.is_australian_airport(code),
    )


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    logger.info(f"Starting Roster Calendar API on http://localhost:{port} (docs at /docs)")
    uvicorn.run(app, host="0.0.0.0", port=port)
