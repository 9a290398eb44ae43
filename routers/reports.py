from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from analysis import (
    diabetes_trend,
    group_by_type,
    hypertension_trend,
    is_flagged,
    recent_activity,
    type_counts,
)
from export import render_report_pdf, report_filename
from storage import get_predictions

router = APIRouter()


@router.get("/api/trends")
def api_trends():
    # Always recomputed from the latest stored snapshot.
    preds = get_predictions()
    return JSONResponse({
        "total": len(preds),
        "counts": type_counts(preds),
        "groups": group_by_type(preds),
        "diabetes": diabetes_trend(preds),
        "hypertension": hypertension_trend(preds),
        "recent": recent_activity(preds),
    })


@router.get("/api/reports")
def api_reports():
    preds = get_predictions()
    return JSONResponse({
        "reports": [dict(p, flagged=is_flagged(p)) for p in preds if isinstance(p, dict)],
    })


@router.get("/api/reports/export")
def api_reports_export():
    pdf = render_report_pdf(get_predictions())
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report_filename()}"'},
    )
