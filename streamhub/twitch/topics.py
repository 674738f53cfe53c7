"""EventSub topics every tenant is subscribed to, with their Helix versions."""

from __future__ import annotations

from streamhub.twitch.models import EventSubCondition

RAID_TOPIC = "channel.raid"

# Iteration order is the creation order used by the reconciler.
DESIRED_TOPICS: dict[str, str] = {
    "channel.update": "1",
    "channel.follow": "1",
    "channel.subscribe": "1",
    "channel.subscription.gift": "1",
    "channel.subscription.message": "1",
    "channel.cheer": "1",
    RAID_TOPIC: "1",
    "channel.poll.begin": "1",
    "channel.poll.progress": "1",
    "channel.poll.end": "1",
    "channel.prediction.begin": "1",
    "channel.prediction.progress": "1",
    "channel.prediction.lock": "1",
    "channel.prediction.end": "1",
    "channel.hype_train.begin": "1",
    "channel.hype_train.progress": "1",
    "channel.hype_train.end": "1",
    "channel.channel_points_custom_reward.add": "1",
    "channel.channel_points_custom_reward.update": "1",
    "channel.channel_points_custom_reward.remove": "1",
    "channel.channel_points_custom_reward_redemption.add": "1",
    "channel.channel_points_custom_reward_redemption.update": "1",
    "stream.online": "1",
    "stream.offline": "1",
}


def condition_for(topic: str, broadcaster_id: str) -> EventSubCondition:
    """Raids are matched on the receiving channel; everything else on the source channel."""
    if topic == RAID_TOPIC:
        return EventSubCondition(to_broadcaster_user_id=broadcaster_id)
    return EventSubCondition(broadcaster_user_id=broadcaster_id)
