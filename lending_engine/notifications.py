"""
Notification Module

Renders customer notification templates and delivers them over the
configured channels. Delivery outcome is recorded on each Notification;
callers in the automation path treat sending as fire-and-forget.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from .storage import StorageInterface, StorageRecord
from .exceptions import NotificationError
from .logging_config import get_logger

logger = get_logger("lending.notifications")


class NotificationChannel(Enum):
    """Delivery channels"""
    LOG = "log"
    IN_APP = "in_app"
    WEBHOOK = "webhook"


class NotificationStatus(Enum):
    """Delivery status"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class NotificationTemplate:
    """Template rendered with str.format using the notification data"""
    id: str
    subject_template: str
    body_template: str
    channels: List[NotificationChannel] = field(
        default_factory=lambda: [NotificationChannel.IN_APP, NotificationChannel.LOG]
    )
    
    def render(self, data: Dict[str, Any]) -> Dict[str, str]:
        try:
            return {
                "subject": self.subject_template.format(**data),
                "body": self.body_template.format(**data)
            }
        except KeyError as e:
            raise NotificationError(f"Template {self.id} missing value for {e}")


@dataclass
class Notification(StorageRecord):
    """A rendered notification and its delivery outcome on one channel"""
    tenant_id: str
    customer_id: str
    template_id: str
    channel: NotificationChannel
    subject: str
    body: str
    status: NotificationStatus = NotificationStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    sent_at: Optional[datetime] = None
    failed_reason: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['channel'] = self.channel.value
        result['status'] = self.status.value
        result['sent_at'] = self.sent_at.isoformat() if self.sent_at else None
        return result
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        for key in ('created_at', 'updated_at', 'sent_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        data['channel'] = NotificationChannel(data['channel'])
        data['status'] = NotificationStatus(data['status'])
        return cls(**data)


DEFAULT_TEMPLATES = [
    NotificationTemplate(
        id="loan_overdue",
        subject_template="Your loan payment is overdue",
        body_template=(
            "Loan {loan_id} has {overdue_count} overdue installment(s) totalling "
            "{overdue_amount}. Loan status is now {new_status}. Please pay as soon "
            "as possible to avoid further late fees."
        )
    ),
]


class ChannelProvider(ABC):
    """Abstract base class for notification channel providers"""
    
    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """Deliver the notification, returns True on success"""
        pass


class LogChannelProvider(ChannelProvider):
    """Writes notifications to the application log"""
    
    def send(self, notification: Notification) -> bool:
        logger.info(
            f"Notification to {notification.customer_id}: {notification.subject}",
            extra={'tenant_id': notification.tenant_id, 'action': notification.template_id}
        )
        return True


class InAppChannelProvider(ChannelProvider):
    """Stores notifications for display in the customer's inbox"""
    
    def __init__(self, storage: StorageInterface, table: str = "in_app_notifications"):
        self.storage = storage
        self.table = table
    
    def send(self, notification: Notification) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        self.storage.save(self.table, notification.id, {
            "id": notification.id,
            "created_at": now,
            "updated_at": now,
            "tenant_id": notification.tenant_id,
            "customer_id": notification.customer_id,
            "template_id": notification.template_id,
            "subject": notification.subject,
            "body": notification.body,
            "read": False
        })
        return True


class WebhookChannelProvider(ChannelProvider):
    """Posts notifications as JSON to a webhook endpoint"""
    
    def __init__(self, url: str, timeout: float = 2.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)
    
    def send(self, notification: Notification) -> bool:
        payload = {
            "notification_id": notification.id,
            "tenant_id": notification.tenant_id,
            "customer_id": notification.customer_id,
            "template": notification.template_id,
            "subject": notification.subject,
            "body": notification.body,
            "data": notification.metadata
        }
        try:
            response = self.client.post(self.url, json=payload)
            if response.is_success:
                return True
            logger.warning(f"Webhook returned {response.status_code}: {response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery failed: {e}")
            return False
    
    def close(self) -> None:
        self.client.close()


class NotificationDispatcher:
    """Renders templates and sends notifications through channel providers"""
    
    def __init__(
        self,
        storage: StorageInterface,
        providers: Optional[Dict[NotificationChannel, ChannelProvider]] = None,
        templates: Optional[List[NotificationTemplate]] = None
    ):
        self.storage = storage
        self.notifications_table = "notifications"
        self.providers: Dict[NotificationChannel, ChannelProvider] = providers or {
            NotificationChannel.LOG: LogChannelProvider(),
            NotificationChannel.IN_APP: InAppChannelProvider(storage),
        }
        # Own copies; create_dispatcher appends channels per dispatcher
        self.templates: Dict[str, NotificationTemplate] = {
            t.id: replace(t, channels=list(t.channels)) for t in (templates or DEFAULT_TEMPLATES)
        }
    
    def register_provider(self, channel: NotificationChannel, provider: ChannelProvider) -> None:
        self.providers[channel] = provider
    
    def register_template(self, template: NotificationTemplate) -> None:
        self.templates[template.id] = template
    
    def notify(
        self,
        tenant_id: str,
        customer_id: str,
        template_id: str,
        data: Dict[str, Any]
    ) -> List[Notification]:
        """
        Render a template and send it on each of its channels
        
        Raises:
            NotificationError: unknown template or missing template data
        """
        template = self.templates.get(template_id)
        if not template:
            raise NotificationError(f"Unknown notification template: {template_id}")
        rendered = template.render(data)
        
        sent = []
        for channel in template.channels:
            provider = self.providers.get(channel)
            if not provider:
                continue
            
            now = datetime.now(timezone.utc)
            notification = Notification(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                tenant_id=tenant_id,
                customer_id=customer_id,
                template_id=template_id,
                channel=channel,
                subject=rendered["subject"],
                body=rendered["body"],
                metadata={k: str(v) for k, v in data.items()}
            )
            
            try:
                if provider.send(notification):
                    notification.status = NotificationStatus.SENT
                    notification.sent_at = now
                else:
                    notification.status = NotificationStatus.FAILED
                    notification.failed_reason = "Provider send failed"
            except Exception as e:
                notification.status = NotificationStatus.FAILED
                notification.failed_reason = str(e)
            
            self.storage.save(self.notifications_table, notification.id, notification.to_dict())
            sent.append(notification)
        
        return sent
    
    def list_notifications(self, tenant_id: str, customer_id: Optional[str] = None) -> List[Notification]:
        filters = {"tenant_id": tenant_id}
        if customer_id:
            filters["customer_id"] = customer_id
        records = self.storage.find(self.notifications_table, filters)
        notifications = [Notification.from_dict(r) for r in records]
        notifications.sort(key=lambda n: n.created_at)
        return notifications


def create_dispatcher(storage: StorageInterface, webhook_url: str = "",
                      webhook_timeout: float = 2.0) -> NotificationDispatcher:
    """Dispatcher with log and in-app channels, plus webhook when a URL is configured"""
    dispatcher = NotificationDispatcher(storage)
    if webhook_url:
        dispatcher.register_provider(
            NotificationChannel.WEBHOOK,
            WebhookChannelProvider(webhook_url, timeout=webhook_timeout)
        )
        for template in dispatcher.templates.values():
            if NotificationChannel.WEBHOOK not in template.channels:
                template.channels.append(NotificationChannel.WEBHOOK)
    return dispatcher
