from fastapi import APIRouter, Response

from backend.core.metrics import METRICS


router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics_endpoint():
    """In-process counters, including the last streak run when it ran in this process."""
    return Response(content=METRICS.export_prometheus(), media_type="text/plain")
