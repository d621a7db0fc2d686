"""
Live broadcast domain logic.

Includes:
- liveness: Upstream manifest probing and the live/offline session record.
- relay: Same-origin proxy for the HLS playlist and segments.
- restream: Per-platform encoder processes pushing the feed to RTMP ingests.
"""
