"""API route modules."""

from agent_dispatch.api.routes import agents, assignments, reclamation

__all__ = ["agents", "assignments", "reclamation"]
