"""Pipeline orchestrator for secret management provisioning.

Drives a repository through the provisioning stages:
subscription → key generation → secret publication → public key commit.

Each stage short-circuits on a "not applicable" condition (no descriptor,
``subscribe: false``, key already committed) and returns an outcome
instead of raising. Stage failures are logged with repository context,
emitted as ERROR events and re-raised; no later stage runs after one.

Source:
- src/sops_bot/subscription/resolver.py (SubscriptionResolver)
- src/sops_bot/keys/provisioner.py (KeyProvisioner)
- src/sops_bot/secret_store/publisher.py (SecretPublisher)
- src/sops_bot/committer/public_key.py (PublicKeyCommitter)
- src/sops_bot/events/emitter.py (EventEmitter)
"""

import asyncio
import logging
import time
import weakref
from enum import Enum
from typing import Optional

from src.sops_bot.committer.public_key import CommitResult, PublicKeyCommitter
from src.sops_bot.events.emitter import EventEmitter, NullEventEmitter
from src.sops_bot.events.models import EventType, PipelineEvent
from src.sops_bot.keys.generator import KeyPair
from src.sops_bot.keys.provisioner import KeyProvisioner
from src.sops_bot.secret_store.publisher import SecretPublisher
from src.sops_bot.subscription.models import SubscriptionDescriptor
from src.sops_bot.subscription.resolver import SubscriptionResolver
from src.sops_bot.webhook.models import ProvisioningRequest

logger = logging.getLogger(__name__)


class ProvisioningOutcome(str, Enum):
    """How a provisioning run ended.

    Attributes:
        NO_CONFIG: The repository has no subscription descriptor.
        NOT_SUBSCRIBED: The descriptor says ``subscribe: false``.
        SKIPPED: A public key is already committed.
        PROVISIONED: Key generated, secret stored, public key committed.
        ALREADY_EXISTS: The public key appeared on the default branch
            between the gate and the commit; the secret was still stored.
    """

    NO_CONFIG = "no_config"
    NOT_SUBSCRIBED = "not_subscribed"
    SKIPPED = "skipped"
    PROVISIONED = "provisioned"
    ALREADY_EXISTS = "already_exists"


class ProvisioningOrchestrator:
    """Orchestrates subscription detection and key provisioning.

    Runs for the same repository are serialized inside this process by a
    per-repository lock. Runs in other processes are not coordinated;
    the file presence checks act as best-effort guards there.

    Attributes:
        resolver: Reads the subscription descriptor.
        key_provisioner: Idempotency gate and key generation.
        secret_publisher: Stores the private key as an Actions secret.
        committer: Commits the public key to the default branch.
        event_emitter: Emits pipeline events for observability.
    """

    def __init__(
        self,
        resolver: SubscriptionResolver,
        key_provisioner: KeyProvisioner,
        secret_publisher: SecretPublisher,
        committer: PublicKeyCommitter,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.resolver = resolver
        self.key_provisioner = key_provisioner
        self.secret_publisher = secret_publisher
        self.committer = committer
        self.event_emitter = event_emitter or NullEventEmitter()
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def handle_request(self, request: ProvisioningRequest) -> ProvisioningOutcome:
        """Process a routed webhook request."""
        await self._emit(
            EventType.TRIGGERED,
            request.full_repository,
            {"trigger": request.trigger.value},
        )
        return await self.process_repository(request.owner, request.repo)

    async def process_repository(self, owner: str, repo: str) -> ProvisioningOutcome:
        """Run the full pipeline for one repository.

        Returns:
            The outcome of the run.

        Raises:
            ConfigError: The descriptor is malformed.
            KeyGenerationError: Key generation failed.
            SecretPublishError: The private key could not be encrypted.
            GitHubAPIError: A GitHub call failed.
        """
        repository = f"{owner}/{repo}"
        lock = self._lock_for(repository)

        async with lock:
            start_time = time.monotonic()
            logger.info("Processing repository", extra={"repository": repository})

            outcome = await self._run(owner, repo)

            duration = time.monotonic() - start_time
            event_type = (
                EventType.PROVISIONED
                if outcome == ProvisioningOutcome.PROVISIONED
                else EventType.NOT_APPLICABLE
            )
            await self._emit(
                event_type,
                repository,
                {"outcome": outcome.value, "duration_seconds": duration},
            )
            return outcome

    async def _run(self, owner: str, repo: str) -> ProvisioningOutcome:
        repository = f"{owner}/{repo}"

        descriptor = await self._stage(
            "subscription", repository, self.resolver.resolve(owner, repo)
        )
        outcome = self._check_subscription(repository, descriptor)
        if outcome is not None:
            return outcome

        key_pair: Optional[KeyPair] = await self._stage(
            "key_generation",
            repository,
            self.key_provisioner.provision(owner, repo),
        )
        if key_pair is None:
            logger.info(
                "Skipping repository, public key already committed",
                extra={"repository": repository},
            )
            return ProvisioningOutcome.SKIPPED

        await self._stage(
            "secret_publish",
            repository,
            self.secret_publisher.publish(owner, repo, key_pair.private_key_armored),
            fingerprint=key_pair.fingerprint,
        )

        result = await self._stage(
            "public_key_commit",
            repository,
            self.committer.commit_public_key(owner, repo, key_pair.public_key_armored),
            fingerprint=key_pair.fingerprint,
        )
        if result == CommitResult.ALREADY_EXISTS:
            logger.warning(
                "Public key for %s was committed concurrently; stored secret %s may not match it",
                repository,
                key_pair.fingerprint,
                extra={"repository": repository, "fingerprint": key_pair.fingerprint},
            )
            return ProvisioningOutcome.ALREADY_EXISTS

        logger.info(
            "Successfully processed %s with key %s",
            repository,
            key_pair.fingerprint,
            extra={"repository": repository, "fingerprint": key_pair.fingerprint},
        )
        return ProvisioningOutcome.PROVISIONED

    def _check_subscription(
        self, repository: str, descriptor: Optional[SubscriptionDescriptor]
    ) -> Optional[ProvisioningOutcome]:
        """Return a halting outcome, or None when the repository is subscribed."""
        if descriptor is None:
            logger.info(
                "Repository does not have secret-management.yaml",
                extra={"repository": repository},
            )
            return ProvisioningOutcome.NO_CONFIG

        if not descriptor.subscribe:
            logger.info(
                "Repository has secret-management.yaml but subscribe=false",
                extra={"repository": repository},
            )
            return ProvisioningOutcome.NOT_SUBSCRIBED

        logger.info(
            "Repository is subscribed to secret management",
            extra={
                "repository": repository,
                "api_version": descriptor.api_version,
                "path_regex": descriptor.optional_path_regex,
            },
        )
        return None

    async def _stage(self, stage: str, repository: str, coro, **context):
        """Await a stage, reporting and re-raising any failure."""
        try:
            return await coro
        except Exception as exc:
            await self._fail(stage, repository, exc, **context)
            raise

    async def _fail(
        self,
        stage: str,
        repository: str,
        exc: Exception,
        **context,
    ) -> None:
        message = "Pipeline stage %s failed for %s"
        args = [stage, repository]
        fingerprint = context.get("fingerprint")
        if fingerprint:
            # Secret may be stored without a committed public key
            message += " (orphaned key fingerprint %s)"
            args.append(fingerprint)
        logger.exception(
            message,
            *args,
            extra={"repository": repository, "stage": stage, **context},
        )
        await self._emit(
            EventType.ERROR,
            repository,
            {
                "stage": stage,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                **context,
            },
        )

    async def _emit(self, event_type: EventType, repository: str, details: dict) -> None:
        try:
            await self.event_emitter.emit(
                PipelineEvent(
                    event_type=event_type,
                    repository=repository,
                    details=details,
                )
            )
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"repository": repository, "event_type": event_type.value},
            )

    def _lock_for(self, repository: str) -> asyncio.Lock:
        lock = self._locks.get(repository)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[repository] = lock
        return lock
