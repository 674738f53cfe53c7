"""Twitch Helix integration: API client, lookups, EventSub reconciliation, OAuth."""
