r"""
Business status state machine.

    pending -> researching -> researched -> enriched -> verified
       \____________\_____________\____________\-----> rejected

Status is advisory: research may run on a business in any state and
enrichment may run straight from ``pending``. It only ever moves forward.
A backwards move is logged and ignored, so a re-crawl of an already
enriched business leaves it ``enriched``.
"""

import logging
from typing import Optional

from django.utils import timezone

from directory.models import Business

logger = logging.getLogger(__name__)

Status = Business.Status

# target -> statuses it may be reached from
TRANSITIONS = {
    Status.RESEARCHING: {Status.PENDING},
    Status.RESEARCHED: {Status.PENDING, Status.RESEARCHING},
    # Re-enrichment re-asserts the current state
    Status.ENRICHED: {Status.PENDING, Status.RESEARCHING, Status.RESEARCHED, Status.ENRICHED},
    Status.VERIFIED: {Status.ENRICHED},
    Status.REJECTED: {Status.PENDING, Status.RESEARCHING, Status.RESEARCHED, Status.ENRICHED},
}


def can_transition(src: str, dst: str) -> bool:
    return src in TRANSITIONS.get(dst, set())


def advance_status(business: Business, target: str, **extra) -> bool:
    """Move ``business`` to ``target`` if allowed from its stored status.

    Implemented as a conditional UPDATE so two workers racing on the same
    business cannot move it backwards. ``extra`` fields are written in the
    same statement. Returns True when the row was updated.
    """
    allowed = TRANSITIONS.get(target)
    if not allowed:
        raise ValueError(f"Unknown target status: {target!r}")

    updated = Business.objects.filter(pk=business.pk, status__in=allowed).update(
        status=target,
        updated_at=timezone.now(),
        **extra,
    )
    if updated:
        business.status = target
        for field, value in extra.items():
            setattr(business, field, value)
        return True

    current: Optional[str] = (
        Business.objects.filter(pk=business.pk).values_list('status', flat=True).first()
    )
    logger.info(
        "Business #%s: %s -> %s not allowed, status unchanged",
        business.pk, current, target,
    )
    return False


def reject(business: Business) -> bool:
    return advance_status(business, Status.REJECTED)
