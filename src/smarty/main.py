"""FastAPI application entry point for the change-request service.

Exposes a single change-request endpoint that turns a natural-language
request into a pull request, plus health and metrics endpoints. Every
request to ``POST /`` passes the gate in order: authentication, rate
limiting, repository readiness, body validation. Only then does it
reach the orchestrator.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.smarty.attachments.manager import AttachmentManager, decode_attachments
from src.smarty.config import AgentSettings, NamingStrategy, get_settings
from src.smarty.errors import (
    AuthenticationError,
    ChangeRequestError,
    InvalidRequestError,
    RateLimitExceededError,
    RepositoryNotReadyError,
    redact_credentials,
)
from src.smarty.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
)
from src.smarty.events.metrics import MetricsEventEmitter, PipelineMetrics
from src.smarty.forge.factory import create_forge
from src.smarty.gate.auth import verify_bearer_token
from src.smarty.gate.cors import (
    ALLOWED_HEADERS,
    ALLOWED_METHODS,
    PreflightCORSMiddleware,
)
from src.smarty.gate.rate_limit import RateLimiter, client_identity
from src.smarty.git.bootstrap import (
    RepositoryBootstrapper,
    create_bootstrapper,
    is_repository_ready,
)
from src.smarty.git.client import GitClient
from src.smarty.git.synchronizer import RepositorySynchronizer
from src.smarty.models import ChangeRequest, ChangeRequestBody
from src.smarty.naming.branch import AssistedNamer, BranchNamer
from src.smarty.orchestrator import ChangeRequestOrchestrator
from src.smarty.publisher.publisher import Publisher
from src.smarty.runner.claude import ClaudeRunner
from src.smarty.verifier.safety import SafetyVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

INVALID_REQUEST_MESSAGE = 'Missing or invalid "request" field'
INVALID_IMAGES_MESSAGE = 'Invalid "images" field'
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Try again later."
NOT_READY_MESSAGE = "Repository is not ready yet. Try again shortly."

router = APIRouter()


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: AgentSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Service configuration:")
    logger.info(f"  Repository Path: {settings.repo_path}")
    logger.info(f"  Baseline Branch: {settings.baseline_branch}")
    logger.info(f"  Remote: {settings.remote_name}")
    if settings.clone_url:
        logger.info(f"  Clone URL: {redact_credentials(settings.clone_url)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    if settings.auth_enabled:
        logger.info(f"  Auth Token: {_redact_secret(settings.auth_token)}")
    else:
        logger.info("  Auth: disabled")
    logger.info(f"  Allowed Origins: {', '.join(settings.allowed_origins)}")
    logger.info(
        f"  Rate Limit: {settings.rate_limit_max_requests} requests "
        f"per {settings.rate_limit_window_seconds}s"
    )
    logger.info(f"  Claude Path: {settings.claude_path}")
    logger.info(f"  Claude Model: {settings.claude_model}")
    logger.info(f"  Agent Timeout Seconds: {settings.agent_timeout_seconds}")
    logger.info(f"  Branch Naming: {settings.branch_naming.value}")
    logger.info(f"  Forge: {settings.forge.value}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  Bitbucket API Token: {_redact_secret(settings.bb_api_token)}")


def build_orchestrator(
    settings: AgentSettings, event_emitter: EventEmitter
) -> ChangeRequestOrchestrator:
    """Wire all pipeline dependencies into a ChangeRequestOrchestrator.

    Args:
        settings: Validated service settings.
        event_emitter: Sink for pipeline events.

    Returns:
        Fully wired ChangeRequestOrchestrator.
    """
    repo_path = Path(settings.repo_path)
    git = GitClient(repo_path, remote=settings.remote_name)

    runner = ClaudeRunner(
        claude_path=settings.claude_path,
        model=settings.claude_model,
        timeout_seconds=settings.agent_timeout_seconds,
    )

    assisted = None
    if settings.branch_naming == NamingStrategy.ASSISTED:
        assisted = AssistedNamer(
            runner=ClaudeRunner(claude_path=settings.claude_path, echo=False),
            working_directory=repo_path,
            model=settings.naming_model,
            timeout_seconds=settings.naming_timeout_seconds,
        )

    return ChangeRequestOrchestrator(
        git=git,
        synchronizer=RepositorySynchronizer(git, settings.baseline_branch),
        namer=BranchNamer(strategy=settings.branch_naming, assisted=assisted),
        runner=runner,
        verifier=SafetyVerifier(git, settings.baseline_branch),
        publisher=Publisher(git, create_forge(settings), settings.baseline_branch),
        attachments=AttachmentManager(repo_path),
        event_emitter=event_emitter,
        baseline_branch=settings.baseline_branch,
        repository=settings.repository_label,
    )


async def _run_bootstrap(bootstrapper: RepositoryBootstrapper) -> None:
    try:
        await bootstrapper.bootstrap()
    except Exception:
        logger.exception("Repository bootstrap failed; repository stays not ready")


def create_app(
    settings: Optional[AgentSettings] = None,
    orchestrator: Optional[ChangeRequestOrchestrator] = None,
    rate_limiter: Optional[RateLimiter] = None,
    metrics: Optional[PipelineMetrics] = None,
    bootstrapper: Optional[RepositoryBootstrapper] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Every collaborator can be injected; anything not given is built from
    ``settings`` (loaded from the environment when omitted).
    """
    settings = settings or get_settings()
    metrics = metrics or PipelineMetrics()

    event_emitter: Optional[EventEmitter] = None
    if orchestrator is None:
        event_emitter = CompositeEventEmitter(
            [LoggingEventEmitter(), MetricsEventEmitter(metrics)]
        )
        orchestrator = build_orchestrator(settings, event_emitter)

    if rate_limiter is None:
        rate_limiter = RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )

    if bootstrapper is None:
        bootstrapper = create_bootstrapper(
            repo_path=Path(settings.repo_path),
            clone_url=settings.clone_url,
            remote=settings.remote_name,
            user_name=settings.git_user_name,
            user_email=settings.git_user_email,
        )

    require_marker = bootstrapper is not None
    repo_path = Path(settings.repo_path)

    def ready_check() -> bool:
        return is_repository_ready(repo_path, require_marker=require_marker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: log configuration and start the bootstrap clone.

        Shutdown: stop a pending bootstrap and release forge resources.
        """
        logger.info("Smarty Agent starting up...")
        _log_configuration(settings)

        bootstrap_task = None
        if bootstrapper is not None:
            bootstrap_task = asyncio.create_task(_run_bootstrap(bootstrapper))

        logger.info("Smarty Agent started successfully")

        yield

        logger.info("Smarty Agent shutting down...")

        if bootstrap_task is not None and not bootstrap_task.done():
            bootstrap_task.cancel()
            try:
                await bootstrap_task
            except asyncio.CancelledError:
                pass

        await orchestrator.publisher.forge.close()
        if event_emitter is not None:
            await event_emitter.close()

        logger.info("Smarty Agent shutdown complete")

    app = FastAPI(
        title="Smarty Agent",
        description="Turns natural-language change requests into pull requests",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.rate_limiter = rate_limiter
    app.state.metrics = metrics
    app.state.ready_check = ready_check

    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=list(ALLOWED_METHODS),
        allow_headers=list(ALLOWED_HEADERS),
    )

    app.add_exception_handler(ChangeRequestError, _change_request_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(router)
    return app


# ----------------------------------------------------------------------
# Exception handlers
# ----------------------------------------------------------------------


async def _change_request_error_handler(
    request: Request, exc: ChangeRequestError
) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceededError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_response(), headers=headers
    )


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500, content={"error": str(exc) or "Internal server error"}
    )


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------


@router.get("/health")
async def health(request: Request):
    """Liveness probe; also reports whether the checkout is ready."""
    ready_check: Callable[[], bool] = request.app.state.ready_check
    return {"status": "ok", "repo_ready": ready_check()}


@router.get("/metrics")
async def metrics_endpoint(request: Request):
    """Prometheus metrics endpoint."""
    metrics: PipelineMetrics = request.app.state.metrics
    return Response(metrics.generate_output(), media_type=CONTENT_TYPE_LATEST)


@router.post("/")
async def submit_change_request(request: Request):
    """Turn a change request into a pull request.

    Returns:
        ``{"pr": url, "branch": name}`` once the pull request is open.
    """
    state = request.app.state
    metrics: PipelineMetrics = state.metrics

    try:
        verify_bearer_token(
            request.headers.get("authorization"), state.settings.auth_token
        )
    except AuthenticationError:
        metrics.record_gate_rejection("unauthorized")
        raise

    decision = state.rate_limiter.check(client_identity(request))
    if not decision.allowed:
        metrics.record_gate_rejection("rate_limited")
        raise RateLimitExceededError(RATE_LIMIT_MESSAGE, decision.retry_after)

    if not state.ready_check():
        metrics.record_gate_rejection("not_ready")
        raise RepositoryNotReadyError(NOT_READY_MESSAGE)

    try:
        change_request = await _parse_change_request(request)
    except InvalidRequestError:
        metrics.record_gate_rejection("invalid_request")
        raise

    orchestrator: ChangeRequestOrchestrator = state.orchestrator
    result = await orchestrator.process(change_request)
    return result.to_response()


async def _parse_change_request(request: Request) -> ChangeRequest:
    """Validate the JSON body and decode its attachments.

    Raises:
        InvalidRequestError: If the body or an attachment is invalid.
    """
    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidRequestError(INVALID_REQUEST_MESSAGE) from exc

    try:
        body = ChangeRequestBody.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors()
        if errors and errors[0]["loc"] and errors[0]["loc"][0] == "images":
            raise InvalidRequestError(INVALID_IMAGES_MESSAGE) from exc
        raise InvalidRequestError(INVALID_REQUEST_MESSAGE) from exc

    return ChangeRequest(
        text=body.request,
        attachments=decode_attachments(body.images),
    )


def main() -> None:
    """Run the service with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
