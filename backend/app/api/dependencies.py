"""
Request-scoped access to the orchestrator built at startup.
"""

from fastapi import HTTPException, Request, status

from app.services.redemption_service import RedemptionOrchestrator


def get_orchestrator(request: Request) -> RedemptionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return orchestrator
