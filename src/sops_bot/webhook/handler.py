"""GitHub webhook routing for the secret management bot.

Maps an inbound webhook (event name from the ``X-GitHub-Event`` header
plus its JSON payload) to at most one ProvisioningRequest. Signature
validation happens upstream of this service.

Routed events:
- ``push``: only when a commit added or modified
  ``.github/secret-management.yaml``
- ``repository`` with action ``created``
- ``repository_dispatch`` with action ``process-secret-management``

Relevant payload fragments::

    {
      "commits": [{"added": [...], "modified": [...]}],
      "action": "created",
      "repository": {"name": "repo", "owner": {"login": "owner"}}
    }
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from src.sops_bot.subscription.models import SUBSCRIPTION_FILE_PATH

from .models import DISPATCH_ACTION, ProvisioningRequest, TriggerType

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Routes GitHub webhook events to provisioning requests."""

    def route(
        self, event_name: str, payload: Dict[str, Any]
    ) -> Optional[ProvisioningRequest]:
        """Decide whether an event should trigger provisioning.

        Args:
            event_name: Value of the ``X-GitHub-Event`` header.
            payload: The raw webhook payload as a dictionary.

        Returns:
            ProvisioningRequest when the event is relevant, None otherwise.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        if event_name == "push":
            trigger = self._route_push(payload)
        elif event_name == "repository":
            trigger = self._route_repository(payload)
        elif event_name == "repository_dispatch":
            trigger = self._route_dispatch(payload)
        else:
            logger.debug("Ignoring unsupported event type: %s", event_name)
            return None

        if trigger is None:
            return None

        identity = self._extract_repository(payload.get("repository"))
        if identity is None:
            return None

        owner, repo = identity
        request = ProvisioningRequest(owner=owner, repo=repo, trigger=trigger)
        logger.info(
            "Routed webhook event",
            extra={
                "event": event_name,
                "trigger": trigger.value,
                "repository": request.full_repository,
            },
        )
        return request

    def _route_push(self, payload: Dict[str, Any]) -> Optional[TriggerType]:
        changed = changed_files(payload.get("commits"))
        if SUBSCRIPTION_FILE_PATH not in changed:
            logger.debug(
                "Push did not touch %s, ignoring", SUBSCRIPTION_FILE_PATH
            )
            return None
        return TriggerType.PUSH

    def _route_repository(self, payload: Dict[str, Any]) -> Optional[TriggerType]:
        action = payload.get("action")
        if action != "created":
            logger.debug("Ignoring repository action: %s", action)
            return None
        return TriggerType.REPOSITORY_CREATED

    def _route_dispatch(self, payload: Dict[str, Any]) -> Optional[TriggerType]:
        action = payload.get("action")
        if action != DISPATCH_ACTION:
            logger.debug("Ignoring repository_dispatch action: %s", action)
            return None
        return TriggerType.REPOSITORY_DISPATCH

    def _extract_repository(self, repo_data: Any) -> Optional[Tuple[str, str]]:
        """Extract ``(owner, repo)`` from the payload's repository object."""
        if not isinstance(repo_data, dict):
            logger.warning(
                "Missing or invalid 'repository' field in payload: %s",
                type(repo_data),
            )
            return None

        name = repo_data.get("name")
        if not isinstance(name, str) or not name.strip():
            logger.warning("Invalid or empty repository name: %s", name)
            return None

        owner_data = repo_data.get("owner")
        login = owner_data.get("login") if isinstance(owner_data, dict) else None
        if not isinstance(login, str) or not login.strip():
            logger.warning("Invalid or empty repository owner: %s", owner_data)
            return None

        return login.strip(), name.strip()


def changed_files(commits: Any) -> Set[str]:
    """Union of added and modified paths across a push's commits.

    Removed paths are not included; deleting the descriptor cannot start
    a subscription.
    """
    if not isinstance(commits, list):
        return set()

    files: Set[str] = set()
    for commit in commits:
        if not isinstance(commit, dict):
            continue
        for key in ("added", "modified"):
            paths: List[Any] = commit.get(key) or []
            files.update(p for p in paths if isinstance(p, str))
    return files
