"""EventSub reconciler: keeps each tenant's Helix subscriptions converged on DESIRED_TOPICS.

Contract:
- Only subscriptions whose callback is exactly {webhook_url}/{tenant} are considered
- Non-enabled matches are removed best-effort: failures are logged, never fatal
- Missing topics are created in DESIRED_TOPICS order; the first creation failure
  aborts the pass and is raised. Nothing already created is rolled back.
- Re-running is safe and only creates what is still missing, so a failed pass is
  recovered by calling reconcile() again
- Listing reads a single page (no cursor). Tenants beyond one page of
  subscriptions are not supported.
"""

from __future__ import annotations

import logging

from streamhub.errors import ClearSubscriptionsError, ProviderError
from streamhub.twitch.client import HelixClient
from streamhub.twitch.models import EventSubSubscription, EventSubTransport
from streamhub.twitch.topics import DESIRED_TOPICS, condition_for

logger = logging.getLogger(__name__)


class SubscriptionReconciler:
    """Diffs desired vs registered EventSub subscriptions and issues corrective calls."""

    def __init__(
        self,
        client: HelixClient,
        webhook_url: str,
        webhook_secret: str,
        topics: dict[str, str] | None = None,
    ):
        self._client = client
        self._webhook_url = webhook_url.rstrip("/")
        self._webhook_secret = webhook_secret
        self._topics = dict(DESIRED_TOPICS if topics is None else topics)

    def callback_for(self, tenant: str) -> str:
        return f"{self._webhook_url}/{tenant}"

    def list_subscriptions(self) -> list[EventSubSubscription]:
        resp = self._client.get_eventsub_subscriptions()
        if resp.failed:
            raise ProviderError(
                f"error getting subscriptions: {resp.error_text}",
                error=resp.error,
                message=resp.error_message,
                status_code=resp.status_code,
            )
        return [EventSubSubscription.model_validate(item) for item in resp.data]

    def reconcile(self, broadcaster_id: str, tenant: str) -> int:
        """Bring ``tenant``'s subscriptions up to the desired set.

        Args:
            broadcaster_id: Twitch user id of the tenant's channel
            tenant: streamhub username, last segment of the callback URL

        Returns:
            total_cost reported by the last successful creation (0 if nothing was created)

        Raises:
            ProviderError: listing failed, or a creation failed part-way through
        """
        callback = self.callback_for(tenant)
        subscribed: set[str] = set()

        for sub in self.list_subscriptions():
            if sub.transport.callback != callback:
                continue
            if sub.enabled:
                subscribed.add(sub.type)
                continue
            # Revoked or failed verification: drop it so it can be recreated.
            self._remove_best_effort(sub)

        transport = EventSubTransport(
            method="webhook", callback=callback, secret=self._webhook_secret
        )
        cost = 0
        created = 0
        for topic, version in self._topics.items():
            if topic in subscribed:
                continue
            sub = EventSubSubscription(
                type=topic,
                version=version,
                status="enabled",
                transport=transport,
                condition=condition_for(topic, broadcaster_id),
            )
            resp = self._client.create_eventsub_subscription(sub)
            if resp.failed:
                logger.error(
                    "Subscription error for %s/%s: err=%s errmsg=%s",
                    tenant,
                    topic,
                    resp.error,
                    resp.error_message,
                )
                raise ProviderError(
                    resp.error_text,
                    error=resp.error,
                    message=resp.error_message,
                    status_code=resp.status_code,
                )
            cost = resp.total_cost
            created += 1

        logger.info(
            "Reconciled %s: %d already enabled, %d created (cost=%d)",
            tenant,
            len(subscribed),
            created,
            cost,
        )
        return cost

    def _remove_best_effort(self, sub: EventSubSubscription) -> None:
        try:
            resp = self._client.remove_eventsub_subscription(sub.id)
        except ProviderError:
            logger.error("Failed to remove event subscription %s", sub.id, exc_info=True)
            return
        if resp.failed:
            logger.error(
                "Failed to remove event subscription %s: %s", sub.id, resp.error_text
            )

    def clear_subscriptions(self, tenant: str) -> int:
        """Remove every subscription whose callback ends with ``tenant``.

        Returns:
            number of subscriptions removed

        Raises:
            ProviderError: listing failed
            ClearSubscriptionsError: a removal failed; ``deleted`` holds the partial count
        """
        deleted = 0
        for sub in self.list_subscriptions():
            if not sub.transport.callback.endswith(tenant):
                continue
            try:
                resp = self._client.remove_eventsub_subscription(sub.id)
            except ProviderError as e:
                raise ClearSubscriptionsError(
                    f"failed removing subscription: {e}", deleted=deleted
                ) from e
            if resp.failed:
                raise ClearSubscriptionsError(
                    f"failed removing subscription: {resp.error_text}",
                    deleted=deleted,
                    error=resp.error,
                    message=resp.error_message,
                    status_code=resp.status_code,
                )
            deleted += 1

        logger.info("Cleared %d subscriptions for %s", deleted, tenant)
        return deleted
