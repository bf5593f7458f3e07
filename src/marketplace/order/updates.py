"""Publishing order status changes.

Every change is checked against the lifecycle rules using a view derived from
freshly fetched records, so concurrent writers on other devices are taken
into account. Marking an order shipped publishes two records: a status record
that keeps the order in processing, then a shipping record with the shipment
detail. Losing the second one is reported, not rolled back.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from marketplace.checkout.outcomes import ShippingEventPublishFailure
from marketplace.domain import logger
from marketplace.eventlog.port import EventLog, PublishError
from marketplace.eventlog.records import ShippingUpdate, StatusUpdate
from marketplace.order.lifecycle import OrderAction, OrderView, assert_can_transition, derive_order_view
from marketplace.order.order import Order
from marketplace.order.status import OrderStatus, ShippingStatus


@dataclass(frozen=True)
class ShipmentResult:
    status_event_id: str
    shipping_event_id: str | None = None
    failure: ShippingEventPublishFailure | None = None

    @property
    def fully_recorded(self) -> bool:
        return self.failure is None


class OrderStatusService:
    def __init__(self, event_log: EventLog) -> None:
        self.event_log = event_log

    async def load(self, order_id: str) -> tuple[Order, OrderView]:
        entry = await self.event_log.fetch_order(order_id)
        if entry is None:
            raise ValidationError({"order_id": [f"Unknown order {order_id}"]})
        order = Order.from_entry(entry)
        view = derive_order_view(order_id, await self.event_log.fetch_order_events(order_id))
        return order, view

    async def _publish_status(
        self,
        order: Order,
        actor_pubkey: str,
        status: OrderStatus,
        reason: str | None = None,
        tracking: str | None = None,
    ) -> str:
        event_id = await self.event_log.publish(
            StatusUpdate(
                order_id=order.order_id,
                status=status,
                actor_pubkey=actor_pubkey,
                recipient_pubkey=order.counterparty_of(actor_pubkey),
                reason=reason,
                tracking=tracking,
            )
        )
        logger.info("Order status published", order_id=order.order_id, status=status.value, event_id=event_id)
        return event_id

    async def _transition(
        self,
        order_id: str,
        actor_pubkey: str,
        *actions: OrderAction,
        reason: str | None = None,
    ) -> str:
        order, view = await self.load(order_id)
        transition = assert_can_transition(order, view, actor_pubkey, *actions)
        return await self._publish_status(order, actor_pubkey, transition.target, reason=reason)

    async def confirm(self, order_id: str, actor_pubkey: str) -> str:
        return await self._transition(order_id, actor_pubkey, OrderAction.CONFIRM)

    async def start_processing(self, order_id: str, actor_pubkey: str) -> str:
        return await self._transition(order_id, actor_pubkey, OrderAction.START_PROCESSING)

    async def complete(self, order_id: str, actor_pubkey: str) -> str:
        """Seller marks delivered / completes, or buyer confirms receipt."""
        return await self._transition(
            order_id,
            actor_pubkey,
            OrderAction.COMPLETE,
            OrderAction.MARK_DELIVERED,
            OrderAction.CONFIRM_RECEIPT,
        )

    async def cancel(self, order_id: str, actor_pubkey: str, reason: str | None = None) -> str:
        return await self._transition(order_id, actor_pubkey, OrderAction.CANCEL, reason=reason)

    async def mark_shipped(
        self,
        order_id: str,
        actor_pubkey: str,
        tracking: str | None = None,
        carrier: str | None = None,
        eta: int | None = None,
    ) -> ShipmentResult:
        order, view = await self.load(order_id)
        assert_can_transition(order, view, actor_pubkey, OrderAction.MARK_SHIPPED)

        # Explicit processing status for readers that ignore shipping records
        status_event_id = await self._publish_status(
            order,
            actor_pubkey,
            OrderStatus.PROCESSING,
            reason="Order shipped",
            tracking=tracking,
        )
        try:
            shipping_event_id = await self._publish_shipping(order, actor_pubkey, tracking, carrier, eta)
        except PublishError as exc:
            logger.warning(
                "Shipping record not published, order left processing without shipped flag",
                order_id=order_id,
                status_event_id=status_event_id,
                reason=exc.reason,
            )
            return ShipmentResult(
                status_event_id=status_event_id,
                failure=ShippingEventPublishFailure(
                    order_id=order_id,
                    status_event_id=status_event_id,
                    reason=exc.reason,
                ),
            )
        return ShipmentResult(status_event_id=status_event_id, shipping_event_id=shipping_event_id)

    async def retry_shipping_event(
        self,
        order_id: str,
        actor_pubkey: str,
        tracking: str | None = None,
        carrier: str | None = None,
        eta: int | None = None,
    ) -> str:
        """Publish only the shipping record after an earlier partial shipment."""
        order, view = await self.load(order_id)
        assert_can_transition(order, view, actor_pubkey, OrderAction.MARK_SHIPPED)
        return await self._publish_shipping(order, actor_pubkey, tracking, carrier, eta)

    async def _publish_shipping(
        self,
        order: Order,
        actor_pubkey: str,
        tracking: str | None,
        carrier: str | None,
        eta: int | None,
    ) -> str:
        event_id = await self.event_log.publish(
            ShippingUpdate(
                order_id=order.order_id,
                shipping_status=ShippingStatus.SHIPPED,
                actor_pubkey=actor_pubkey,
                recipient_pubkey=order.counterparty_of(actor_pubkey),
                tracking=tracking,
                carrier=carrier,
                eta=eta,
            )
        )
        logger.info("Shipping record published", order_id=order.order_id, event_id=event_id)
        return event_id
