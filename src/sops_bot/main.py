"""FastAPI application entry point for the SOPS secret management bot.

Receives GitHub webhooks, routes them, and runs the provisioning pipeline
to completion before responding. A failed run answers HTTP 500 so that
the delivery shows as failed on GitHub.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .committer.public_key import PublicKeyCommitter
from .config import BotSettings, get_settings
from .events.emitter import EventEmitter, EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .github.client import GitHubClient
from .keys.generator import GpgKeyPairGenerator
from .keys.provisioner import KeyProvisioner
from .orchestrator import ProvisioningOrchestrator
from .secret_store.publisher import SecretPublisher
from .subscription.resolver import SubscriptionResolver
from .webhook.handler import WebhookHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: Optional[BotSettings] = None
orchestrator: Optional[ProvisioningOrchestrator] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubClient] = None
event_emitter: Optional[EventEmitter] = None


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(cfg: BotSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Bot configuration:")
    logger.info(f"  GitHub Base URL: {cfg.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(cfg.github_token)}")
    logger.info(f"  GitHub Timeout Seconds: {cfg.github_timeout_seconds}")
    logger.info(f"  GitHub Max Retries: {cfg.github_max_retries}")
    logger.info(f"  GPG Binary: {cfg.gpg_binary}")
    logger.info(f"  GPG Key Length: {cfg.gpg_key_length}")
    logger.info(f"  GPG Key Email: {cfg.gpg_key_email}")
    logger.info(f"  Host: {cfg.host}")
    logger.info(f"  Port: {cfg.port}")
    logger.info(f"  Log Level: {cfg.log_level}")


def build_orchestrator(
    cfg: BotSettings,
    gh_client: GitHubClient,
    emitter: EventEmitter,
) -> ProvisioningOrchestrator:
    """Wire all pipeline dependencies into a ProvisioningOrchestrator."""
    generator = GpgKeyPairGenerator(
        gpg_binary=cfg.gpg_binary,
        key_length=cfg.gpg_key_length,
        key_comment=cfg.gpg_key_comment,
        key_email=cfg.gpg_key_email,
    )

    return ProvisioningOrchestrator(
        resolver=SubscriptionResolver(github_client=gh_client),
        key_provisioner=KeyProvisioner(github_client=gh_client, generator=generator),
        secret_publisher=SecretPublisher(github_client=gh_client),
        committer=PublicKeyCommitter(
            github_client=gh_client,
            commit_message=cfg.commit_message,
        ),
        event_emitter=emitter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration, wire dependencies, and close the client and emitter on exit."""
    global settings, orchestrator, webhook_handler, github_client, event_emitter

    logger.info("SOPS bot starting up...")

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    _log_configuration(settings)

    webhook_handler = WebhookHandler()
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        max_retries=settings.github_max_retries,
        timeout=settings.github_timeout_seconds,
    )
    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS]
    )
    orchestrator = build_orchestrator(settings, github_client, event_emitter)

    logger.info("SOPS bot started successfully")

    yield

    logger.info("SOPS bot shutting down...")

    if github_client is not None:
        await github_client.close()

    if event_emitter is not None:
        await event_emitter.close()

    logger.info("SOPS bot shutdown complete")


app = FastAPI(
    title="SOPS Secret Management Bot",
    description="Provisions GPG keys for repositories subscribed to secret management",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness probe endpoint.

    Ready once the pipeline is wired and the GitHub API answers.
    """
    initialized = orchestrator is not None and github_client is not None
    github_status = "unknown"
    if github_client is not None:
        github_status = "healthy" if await github_client.health_check() else "unhealthy"

    is_ready = initialized and github_status == "healthy"
    body = {
        "status": "ready" if is_ready else "not_ready",
        "dependencies": {"github": github_status},
    }
    if not is_ready:
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return generate_metrics_output().decode("utf-8")


@app.post("/webhooks/github")
async def github_webhook(
    request: Request,
    x_github_event: str = Header(default=""),
):
    """GitHub webhook receiver endpoint.

    Runs the pipeline synchronously for routed events. Not-applicable
    outcomes answer 200; failures answer 500.
    """
    if webhook_handler is None or orchestrator is None:
        logger.error("Bot not initialized")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Bot not initialized"},
        )

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "Invalid JSON payload"},
        )

    provisioning_request = webhook_handler.route(x_github_event, payload)
    if provisioning_request is None:
        return {"status": "ignored", "event": x_github_event}

    repository = provisioning_request.full_repository
    try:
        outcome = await orchestrator.handle_request(provisioning_request)
    except Exception as exc:
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "repository": repository,
                "error_type": type(exc).__name__,
                "message": str(exc),
            },
        )

    return {"status": outcome.value, "repository": repository}


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.sops_bot.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
