"""EventSub webhook inbound system.

Deliveries are signature-verified, deduplicated by message id, and archived
per tenant (latest event + bounded history) in the KV store.
"""
