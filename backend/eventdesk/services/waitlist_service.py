"""
Waitlist promotion.

PROMOTION RULE
==============

When a seat in (event, tier) is released, the WAITLISTED registration with the
lowest position in that tier gets it:

  1. Reserve a seat through the ledger (the ledger stays the only authority)
  2. Re-read the candidate; if it is no longer WAITLISTED, give the seat back
     and try the next position
  3. Flip it to REGISTERED, attach the seat token and issue its ticket
  4. Close the gap it left in the waitlist
  5. Publish a promotion signal (fire-and-forget)

A reservation that unexpectedly fails moves on to the next position instead of
aborting. The loop stops once as many candidates were promoted as seats were
freed, so it never promotes more than were released.

The caller (the admission controller) holds the event's admission lock, which
keeps promotion ordered with joins and waitlist cancellations.
"""

from eventdesk.core.logging import get_logger
from eventdesk.core.metrics import waitlist_promotions
from eventdesk.domain.models import Registration, RegistrationStatus
from eventdesk.services.interfaces.ledger import CapacityLedger
from eventdesk.services.notification_service import NotificationPublisher, RegistrationSignal, SignalKind
from eventdesk.services.ticket_service import TicketIssuer
from eventdesk.stores.interfaces import RegistrationStore

logger = get_logger(__name__)


class WaitlistPromoter:
    def __init__(
        self,
        store: RegistrationStore,
        ledger: CapacityLedger,
        issuer: TicketIssuer,
        publisher: NotificationPublisher,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._issuer = issuer
        self._publisher = publisher

    async def promote(self, event_id: int, tier: str, seats_freed: int = 1) -> list[Registration]:
        """Promote up to `seats_freed` waitlisted registrations of (event_id, tier)."""
        promoted: list[Registration] = []
        if seats_freed <= 0:
            return promoted

        candidates = await self._store.list_waitlist(event_id, tier)
        for candidate in candidates:
            if len(promoted) == seats_freed:
                break

            token = await self._ledger.reserve(event_id, tier)
            if token is None:
                logger.warning(
                    "waitlist_promotion_reserve_failed",
                    event_id=event_id,
                    tier=tier,
                    registration_id=candidate.id,
                )
                continue

            try:
                current = await self._store.get_registration(candidate.id)
                if current is None or current.status != RegistrationStatus.WAITLISTED:
                    await self._ledger.release(token)
                    logger.info(
                        "waitlist_candidate_skipped",
                        event_id=event_id,
                        registration_id=candidate.id,
                        reason="no_longer_waitlisted",
                    )
                    continue

                position = current.waitlist_position
                current.status = RegistrationStatus.REGISTERED
                current.waitlist_position = None
                current.seat_token = token.token
                current.ticket_code = self._issuer.issue(current)
                saved = await self._store.save_registration(current)
            except Exception:
                await self._ledger.release(token)
                raise

            await self._store.shift_waitlist(event_id, position)
            promoted.append(saved)

            waitlist_promotions.inc()
            logger.info(
                "waitlist_promoted",
                event_id=event_id,
                tier=tier,
                registration_id=saved.id,
                person_id=saved.person_id,
                from_position=position,
            )
            self._publisher.publish(RegistrationSignal.for_registration(SignalKind.PROMOTED, saved))

        return promoted
