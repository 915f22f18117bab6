import logging
from typing import List, Optional

from familysafe.core.errors import FamilySafeError
from familysafe.database.realtime import Binding, ChangeEvent
from familysafe.modules.alerts.schemas import AlertResponse
from familysafe.modules.alerts.service import AlertService
from familysafe.modules.family.service import FamilyGraph
from familysafe.session.devices import Notifier

logger = logging.getLogger(__name__)

ALERT_TITLE = "Emergency alert"


class AlertFeed:
    """
    A parent's alert list, newest first.

    Every client receives every alert insert; only alerts about a member the
    parent is linked to are kept and notified.
    """

    def __init__(self, service: AlertService, graph: FamilyGraph, notifier: Optional[Notifier] = None):
        self.service = service
        self.graph = graph
        self.notifier = notifier
        self.alerts: List[AlertResponse] = []

    @property
    def unread_count(self) -> int:
        return sum(1 for alert in self.alerts if not alert.read)

    def get(self, alert_id: str) -> Optional[AlertResponse]:
        return next((alert for alert in self.alerts if alert.id == alert_id), None)

    async def load(self) -> List[AlertResponse]:
        try:
            member_ids = await self.graph.authorized_member_ids()
            self.alerts = await self.service.list_for_members(member_ids)
        except FamilySafeError as e:
            logger.error(f"Failed to load alerts for {self.graph.parent_id}: {e}")
            self.alerts = []
        return self.alerts

    async def on_insert(self, event: ChangeEvent) -> bool:
        row = event.new
        if not row.get("id") or self.get(row["id"]) is not None:
            return False
        if not await self.graph.is_authorized(row.get("member_id")):
            return False
        # another delivery of this row may have landed during the await
        if self.get(row["id"]) is not None:
            return False
        alert = AlertResponse(**row)
        self.alerts.insert(0, alert)
        await self._notify(alert)
        return True

    async def _notify(self, alert: AlertResponse) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(ALERT_TITLE, alert.message, require_interaction=True)
        except Exception as e:
            logger.warning(f"Alert notification failed: {e}")

    def on_link_change(self, event: ChangeEvent) -> None:
        self.graph.on_link_change(event.new, event.old)

    async def mark_read(self, alert_id: str) -> AlertResponse:
        updated = await self.service.mark_read(alert_id)
        self.alerts = [updated if alert.id == alert_id else alert for alert in self.alerts]
        return updated

    async def delete(self, alert_id: str) -> None:
        await self.service.delete_alert(alert_id)
        self.alerts = [alert for alert in self.alerts if alert.id != alert_id]

    def bindings(self) -> List[Binding]:
        return [
            Binding("INSERT", "alerts", self.on_insert),
            Binding("*", "parent_children", self.on_link_change, filter=f"parent_id=eq.{self.graph.parent_id}"),
        ]
