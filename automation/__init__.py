"""
Automation package for the rental recommendation engine.

Periodic maintenance of a running orchestrator:
- Interaction cleanup (daily)
- Latent model training (weekly, optional)
- Scheduler
"""

__all__ = [
    "cleanup",
    "scheduler",
]
