"""Prometheus exposition router."""

from fastapi import APIRouter, Request, Response

router = APIRouter()


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Encode the process metrics in the Prometheus text format."""
    context = request.app.state.metrics
    return Response(content=context.export(), media_type=context.content_type)
