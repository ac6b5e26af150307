# Overview: Fire-and-forget customer notifications through an in-process outbound queue.

"""
Notification Dispatch

emit() puts a rendered message on a queue and returns immediately; a daemon
worker thread delivers it. Delivery failures are logged and dropped. Nothing
is retried and nothing is reported back to the order workflow.
"""

from __future__ import annotations

import logging
import queue
import smtplib
import threading
from dataclasses import dataclass
from email.message import EmailMessage

from flask import current_app


logger = logging.getLogger(__name__)


NOTIFY_ORDER_CONFIRMATION = "order_confirmation"
NOTIFY_ORDER_CANCELLATION = "order_cancellation"
NOTIFY_ORDER_STATUS_UPDATE = "order_status_update"


TEMPLATES = {
    NOTIFY_ORDER_CONFIRMATION: (
        "Order #{order_id} confirmed",
        "Hi {customer_name},\n\n"
        "Thanks for your order #{order_id}. Total: {total_amount}.\n"
        "Current status: {status}.\n\n"
        "We'll let you know when it ships.\n",
    ),
    NOTIFY_ORDER_CANCELLATION: (
        "Order #{order_id} cancelled",
        "Hi {customer_name},\n\n"
        "Your order #{order_id} has been cancelled.\n"
        "{refund_line}\n",
    ),
    NOTIFY_ORDER_STATUS_UPDATE: (
        "Order #{order_id} is now {status}",
        "Hi {customer_name},\n\n"
        "Your order #{order_id} status changed to: {status}.\n",
    ),
}


@dataclass(frozen=True)
class OutboundMessage:
    kind: str
    to: str
    subject: str
    body: str


def render(kind: str, recipient: str, context: dict) -> OutboundMessage:
    subject_tpl, body_tpl = TEMPLATES[kind]
    values = {
        "customer_name": "there",
        "refund_line": "",
        **{k: v for k, v in context.items() if v is not None},
    }
    return OutboundMessage(
        kind=kind,
        to=recipient,
        subject=subject_tpl.format(**values),
        body=body_tpl.format(**values),
    )


class LogMailer:
    """Development mailer: writes messages to the log instead of sending."""

    def send(self, message: OutboundMessage) -> None:
        logger.info("MAIL to=%s subject=%r", message.to, message.subject)


class SmtpMailer:
    def __init__(self, *, host: str, port: int, sender: str, user: str = "", password: str = "",
                 timeout: float = 10.0):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, message: OutboundMessage) -> None:
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.user:
                smtp.starttls()
                smtp.login(self.user, self.password)
            smtp.send_message(email)


class NotificationDispatcher:
    def __init__(self, mailer, *, enabled: bool = True, maxsize: int = 1000):
        self.mailer = mailer
        self.enabled = enabled
        self._queue: queue.Queue[OutboundMessage] = queue.Queue(maxsize=maxsize)
        self._worker: threading.Thread | None = None
        self._worker_lock = threading.Lock()

    def emit(self, kind: str, recipient: str | None, context: dict) -> bool:
        """Queue a notification. Never blocks; returns False if it was dropped."""
        if not self.enabled or not recipient:
            return False

        message = render(kind, recipient, context)
        self._ensure_worker()
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.error("Notification queue full; dropped %s for %s", kind, recipient)
            return False
        return True

    def queued(self) -> int:
        return self._queue.qsize()

    def drain(self) -> None:
        """Block until every queued message has been attempted (tests, shutdown)."""
        self._queue.join()

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name="storefront-notifications", daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            try:
                self.mailer.send(message)
            except Exception:
                logger.exception("Failed to deliver %s notification to %s", message.kind, message.to)
            finally:
                self._queue.task_done()


def build_mailer(config):
    if config.get("MAIL_BACKEND") == "smtp":
        return SmtpMailer(
            host=config["SMTP_HOST"],
            port=config["SMTP_PORT"],
            sender=config["MAIL_FROM"],
            user=config.get("SMTP_USER", ""),
            password=config.get("SMTP_PASSWORD", ""),
            timeout=config.get("SMTP_TIMEOUT_SECONDS", 10.0),
        )
    return LogMailer()


def init_app(app) -> NotificationDispatcher:
    dispatcher = NotificationDispatcher(
        build_mailer(app.config),
        enabled=app.config.get("NOTIFICATIONS_ENABLED", True),
    )
    app.extensions["notifications"] = dispatcher
    return dispatcher


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions["notifications"]
