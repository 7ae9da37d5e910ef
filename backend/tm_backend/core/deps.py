"""FastAPI dependencies: storage gateway, metrics guard."""
import hmac

from fastapi import Header, HTTPException, Request, status

from tm_backend.core.config import get_settings
from tm_backend.services.uploads import StorageGateway


def get_gateway(request: Request) -> StorageGateway:
    """Process-wide gateway built once at startup (see main.lifespan)."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage not initialised",
        )
    return gateway


def require_metrics_access(
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
) -> None:
    """Allow /metrics if no METRICS_SECRET is configured (local) or the header matches it."""
    s = get_settings()
    if s.metrics_secret:
        if not x_metrics_secret or not hmac.compare_digest(x_metrics_secret, s.metrics_secret):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing X-Metrics-Secret",
            )
