"""
Domain layer of the broadcast control plane.

Submodules:
- auth: Admin/member token verification.
- live: Broadcast liveness, HLS relay and restreaming.
- realtime: WebSocket messaging gateway for group channels.
- vault: Encryption of platform stream keys at rest.
- utils: ID generation.
"""
