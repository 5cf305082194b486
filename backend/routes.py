import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request

from .config import settings
from .deps import get_refresh_token, get_strava_client
from .limiter import limiter
from .models import Kudoer
from .patterns import DashboardSummary, aggregate
from .services.strava_client import (
    StravaAuthError,
    StravaClient,
    StravaError,
    StravaRateLimitError,
)

router = APIRouter()
logger = logging.getLogger(__name__)

def to_http_error(exc: StravaError, detail: str) -> HTTPException:
    """Map a Strava failure onto the response the dashboard expects."""
    if isinstance(exc, StravaAuthError):
        return HTTPException(status_code=401, detail="Invalid or expired Strava credentials")
    if isinstance(exc, StravaRateLimitError):
        return HTTPException(status_code=429, detail=str(exc))
    return HTTPException(status_code=500, detail=detail)

@router.get("/athlete")
async def get_athlete(
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
) -> Dict[str, Any]:
    try:
        return await client.get_athlete(refresh_token)
    except StravaError as e:
        logger.error(f"Error fetching athlete: {e}")
        raise to_http_error(e, "Failed to fetch athlete data")

@router.get("/following")
async def get_following(
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
) -> List[Dict[str, Any]]:
    return await client.get_followed_athletes(refresh_token)

@router.get("/activities/{activity_id}")
async def get_activity(
    activity_id: int,
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
) -> Dict[str, Any]:
    try:
        return await client.get_activity(refresh_token, activity_id)
    except StravaError as e:
        logger.error(f"Error fetching activity {activity_id}: {e}")
        raise to_http_error(e, "Failed to fetch activity data")

@router.get("/activities/{activity_id}/kudos", response_model=List[Kudoer])
async def get_activity_kudoers(
    activity_id: int,
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
):
    try:
        return await client.get_activity_kudoers(refresh_token, activity_id)
    except StravaError as e:
        logger.error(f"Error fetching kudoers for {activity_id}: {e}")
        raise to_http_error(e, "Failed to fetch kudoers data")

@router.post("/activities/{activity_id}/kudos")
async def give_kudos(
    activity_id: int,
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
):
    try:
        await client.give_kudos(refresh_token, activity_id)
    except StravaError as e:
        logger.error(f"Error giving kudos to {activity_id}: {e}")
        raise to_http_error(e, "Failed to give kudos")
    return {"success": True, "activity_id": activity_id}

@router.post("/poll-activities")
@limiter.limit("10/minute")
async def poll_activities(
    request: Request,
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
):
    """Fetch recent activities and their kudoers, logging what was found."""
    try:
        activities = await client.fetch_activities_with_kudoers(refresh_token, settings.ACTIVITY_FETCH_LIMIT)
    except StravaError as e:
        logger.error(f"Error polling activities: {e}")
        raise to_http_error(e, "Failed to poll activities")

    for activity in activities:
        for kudoer in activity.kudoers:
            logger.debug(f"{activity.name}: kudos from {kudoer.key}")

    return {"message": "Polling completed successfully", "activities": len(activities)}

@router.get("/kudoers-dashboard", response_model=DashboardSummary)
@limiter.limit("30/minute")
async def kudoers_dashboard(
    request: Request,
    refresh_token: str = Depends(get_refresh_token),
    client: StravaClient = Depends(get_strava_client),
):
    """
    Recent activities with their kudoers, plus the aggregate kudoer patterns.
    A failed kudoer lookup only empties that activity; a failed activity list or a rate-limit trip fails the request.
    """
    logger.info("Dashboard request received")
    try:
        activities = await client.fetch_activities_with_kudoers(refresh_token, settings.ACTIVITY_FETCH_LIMIT)
    except StravaError as e:
        logger.error(f"Error fetching dashboard data: {e}")
        raise to_http_error(e, "Failed to fetch dashboard data")

    summary = aggregate(
        activities,
        recent_window=settings.RECENT_WINDOW,
        total_window=settings.ACTIVITY_FETCH_LIMIT,
        top_n=settings.TOP_KUDOERS,
    )
    logger.info(
        f"Returning {len(summary.activities)} activities, "
        f"{summary.total_kudoers} kudos from {summary.unique_people} people"
    )
    return summary
