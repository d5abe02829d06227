"""
Core API backend for TaskFlow.

It exposes the following endpoints:
- **GET /health**       - liveness check.
- **GET /agent/tools**  - catalog of registered tools (for debugging / UI).
- **POST /agent**       - run the agent: {"message": "...", "conversation_history": [...]}

The caller's identity is taken from the ``X-User-Id`` header, which an upstream auth proxy is
expected to set.
"""

import logging
from typing import Optional

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
    Response,
)

from taskflow.api.models import (
    AgentRequest,
    AgentResponse,
    ToolListResponse,
)
from taskflow.common import (
    AnsiColors,
    colored_print,
)
from taskflow.config import settings
from taskflow.core.errors import (
    CompletionError,
    RateLimited,
    TokenBudgetExceeded,
    Unauthorized,
)
from taskflow.core.service import (
    AgentService,
    User,
    build_service,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_service(request: Request) -> AgentService:
    """Return the service instance bound to the running app."""
    return request.app.state.service


def get_current_user(x_user_id: Optional[str] = Header(None)) -> Optional[User]:
    """Opaque identity provider: the authenticated user id, if any."""
    if not x_user_id or not x_user_id.strip():
        return None
    return User(id=x_user_id.strip())


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(service: AgentService | None = None) -> FastAPI:
    """Build the FastAPI app around *service* (or a service built from settings)."""
    api = FastAPI(title="TaskFlow API", version="0.1.0", description="TaskFlow todo agent API")
    api.state.service = service or build_service(settings)

    @api.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @api.get("/agent/tools", response_model=ToolListResponse, summary="List registered tools")
    def list_tools(svc: AgentService = Depends(get_service)) -> ToolListResponse:
        """List every tool the agent can discover."""
        tools = svc.registry.describe_all()
        return ToolListResponse(tools=tools, count=len(tools))

    @api.post("/agent", response_model=AgentResponse, summary="Run the agent")
    def agent_endpoint(
        req: AgentRequest,
        response: Response,
        user: Optional[User] = Depends(get_current_user),
        svc: AgentService = Depends(get_service),
    ) -> AgentResponse:
        """Run one agent invocation for the current user."""
        user_id = user.id if user else ""
        try:
            result = svc.run_agent(req.message, user, req.conversation_history)
        except Unauthorized as exc:
            raise HTTPException(status_code=401, detail="Unauthorized") from exc
        except (RateLimited, TokenBudgetExceeded) as exc:
            logger.warning("Rejected agent call for user %s: %s", user_id, exc)
            headers = svc.governor.headers(user_id)
            headers["Retry-After"] = str(exc.retry_after)
            raise HTTPException(
                status_code=429,
                detail={"error": str(exc), "retry_after": exc.retry_after},
                headers=headers,
            ) from exc
        except CompletionError as exc:
            logger.error("Agent failed to process request: %s", exc)
            raise HTTPException(
                status_code=502, detail="Agent failed to process request"
            ) from exc

        response.headers.update(svc.governor.headers(user_id))
        return AgentResponse(
            steps=result.steps,
            response=result.final_response,
            iterations=result.iteration_count,
            tools_discovered=result.tools_discovered,
        )

    return api


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting TaskFlow API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump())

    colored_print(f"TaskFlow API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "taskflow.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m taskflow.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
