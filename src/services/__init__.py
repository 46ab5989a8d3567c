from src.services import (
    escalation_service,
    generation_service,
    notification_service,
    runner_service,
    transition_service,
)


__all__ = [
    "escalation_service",
    "generation_service",
    "notification_service",
    "runner_service",
    "transition_service",
]
