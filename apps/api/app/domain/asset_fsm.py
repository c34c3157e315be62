"""Asset processing lifecycle transition rules."""

from app.errors import ApiError
from app.schemas.asset import AssetStatus

# PROCESSED -> PROCESSING is the re-analysis edge; only retry takes it.
_ALLOWED_TRANSITIONS: dict[AssetStatus, set[AssetStatus]] = {
    AssetStatus.PENDING: {AssetStatus.PROCESSING},
    AssetStatus.PROCESSING: {AssetStatus.PROCESSED, AssetStatus.ERROR},
    AssetStatus.PROCESSED: {AssetStatus.APPROVED, AssetStatus.PROCESSING},
    AssetStatus.APPROVED: set(),
    AssetStatus.ERROR: {AssetStatus.PROCESSING},
}

START_STATUSES: frozenset[AssetStatus] = frozenset({AssetStatus.PENDING, AssetStatus.ERROR})
RETRY_STATUSES: frozenset[AssetStatus] = START_STATUSES | {AssetStatus.PROCESSED}


def allowed_next_statuses(status: AssetStatus) -> list[AssetStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def is_allowed_transition(old_status: AssetStatus, new_status: AssetStatus) -> bool:
    return new_status in _ALLOWED_TRANSITIONS.get(old_status, set())


def invalid_transition_error(
    old_status: AssetStatus,
    new_status: AssetStatus,
    *,
    allowed: list[AssetStatus] | None = None,
) -> ApiError:
    return ApiError(
        status_code=409,
        code="FSM_TRANSITION_INVALID",
        message="Invalid status transition",
        details={
            "current_status": old_status,
            "attempted_status": new_status,
            "allowed_next_statuses": allowed if allowed is not None else allowed_next_statuses(old_status),
        },
    )


def ensure_transition(old_status: AssetStatus, new_status: AssetStatus) -> None:
    """Validate transition according to lifecycle rules."""
    if not is_allowed_transition(old_status, new_status):
        raise invalid_transition_error(old_status, new_status)
