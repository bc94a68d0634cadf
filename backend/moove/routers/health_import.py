import logging

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException
from sqlalchemy.orm import Session

from moove.database import get_db
from moove.errors import ImportCancelledError, SourceReadError, UnsupportedFormatError
from moove.parsers.health_export import parse_health_export
from moove.parsers.records import HealthImportResult, ImportProgress
from moove.parsers.sources import UploadFileSource
from moove.services.health_merge import import_health_result
from moove.services.health_store import HealthStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health-import"])


def _log_progress(progress: ImportProgress) -> None:
    logger.debug("Health import %s %d%%: %s", progress.phase, progress.percent, progress.detail)


async def _parse_upload(file: UploadFile) -> HealthImportResult:
    try:
        return await parse_health_export(UploadFileSource(file), on_progress=_log_progress)
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ImportCancelledError as exc:
        logger.info("Health import cancelled: %s", exc)
        raise HTTPException(
            status_code=422, detail="The import was cancelled before it finished."
        )
    except SourceReadError as exc:
        logger.warning("Health export read failed: %s", exc)
        raise HTTPException(
            status_code=422,
            detail=f"Could not read the export file, please try again. ({exc})",
        )


def _serialize_result(result: HealthImportResult) -> dict:
    return {
        "workouts": [
            {
                "id": w.id,
                "name": w.name,
                "blocks": [{"id": b.id, "type": b.type, "name": b.name} for b in w.blocks],
                "startedAt": w.started_at.isoformat(),
                "completedAt": w.completed_at.isoformat(),
                "totalDuration": w.total_duration,
                "overallEffort": w.overall_effort,
                "cardioType": w.cardio_type,
                "distance": w.distance,
            }
            for w in result.workouts
        ],
        "bodyMetrics": [
            {"date": m.date, "weight": m.weight, "bodyFat": m.body_fat, "source": m.source}
            for m in result.body_metrics
        ],
        "activityDays": [
            {
                "date": d.date,
                "activeEnergy": d.active_energy,
                "exerciseMinutes": d.exercise_minutes,
                "standHours": d.stand_hours,
            }
            for d in result.activity_days
        ],
    }


@router.post("/health-import/preview")
async def preview_health_export(file: UploadFile = File(...)):
    """Parse an Apple Health export.xml and return what would be imported."""
    result = await _parse_upload(file)
    return {"found": result.counts(), **_serialize_result(result)}


@router.post("/health-import")
async def import_health_export(file: UploadFile = File(...), db: Session = Depends(get_db)):
    """Parse an Apple Health export.xml and save the records not already stored."""
    result = await _parse_upload(file)
    summary = import_health_result(HealthStore(db), result)
    return {
        "status": "success" if summary.ok else "partial",
        "found": result.counts(),
        "imported": summary.counts(),
        "failed": sorted(summary.failed),
        "message": summary.message(),
    }
