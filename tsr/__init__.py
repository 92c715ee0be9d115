"""Traefik Setup Reconciler (TSR).

Produces and reconciles the declarative configuration that puts a managed
application behind Traefik on a Docker Swarm node:
 - dynamic routing documents (routers / services / middlewares)
 - the static (bootstrap-once) Traefik configuration
 - the Traefik swarm service itself (create or merge-update)
 - periodic maintenance jobs (docker cleanup)

Nothing here implements the proxy or the orchestrator; it only writes what they read.
"""
