# Overview: Ticket validation and multi-channel print dispatch with fallback.

"""
Print Dispatcher

Printing always happens after the order is saved, and nothing here can
change or roll back an order. The dispatcher walks an ordered list of ticket
sinks and stops at the first one that reports success:

1. BridgeSink        - local print bridge app, raw ESC/POS over HTTP POST
2. UriSchemeSink     - mobile only, ESC/POS as base64 in a custom URI that a
                       paired printer-driver app handles
3. BrowserDialogSink - HTML ticket opened in a browser window for the
                       platform print dialog

A ticket that fails validation is rejected before any sink is tried.
"""

from __future__ import annotations

import base64
import logging
import math
import os
import re
import tempfile
import threading
import webbrowser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx
from flask import current_app, render_template

from ..escpos import build_ticket, format_money
from ..time_utils import format_ticket_timestamp

logger = logging.getLogger(__name__)

MOBILE_USER_AGENT = re.compile(r"Android|iPhone|iPad|iPod|Mobile", re.IGNORECASE)

POPUP_BLOCKED_MESSAGE = (
    "The print window was blocked. Enable popups for this site, then reprint the ticket."
)
NO_CHANNEL_MESSAGE = "No printer is reachable. Check the print bridge or enable popups, then reprint."


class PrintError(Exception):
    """Raised when ticket data cannot be printed."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class PrintResult:
    success: bool
    channel: str | None
    message: str = ""
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "channel": self.channel,
            "message": self.message,
            **self.payload,
        }


@dataclass(frozen=True)
class TicketFormat:
    width: int = 32
    restaurant_name: str = ""
    tagline: str = ""
    website: str = ""
    currency: str = "dh"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TicketFormat":
        return cls(
            width=int(config.get("TICKET_WIDTH", 32)),
            restaurant_name=config.get("RESTAURANT_NAME", ""),
            tagline=config.get("RESTAURANT_TAGLINE", ""),
            website=config.get("RESTAURANT_WEBSITE", ""),
            currency=config.get("CURRENCY_LABEL", "dh"),
        )


# =============================================================================
# Ticket data
# =============================================================================

def ticket_from_order(order) -> dict:
    """Plain-data snapshot of an Order model for printing."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "bip_reference": order.bip_reference,
        "created_at": order.created_at,
        "total_cents": order.total_cents,
        "items": [
            {
                "product_name": item.product_name,
                "price_cents": item.price_cents,
                "quantity": item.quantity,
            }
            for item in order.items
        ],
    }


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_ticket(ticket: dict) -> None:
    """Raise PrintError listing every problem with the ticket data."""
    errors: list[str] = []

    items = ticket.get("items") or []
    if not items:
        errors.append("Order has no items")
    if ticket.get("order_number") in (None, ""):
        errors.append("Order number is missing")
    if not ticket.get("created_at"):
        errors.append("Order date is missing")
    if not _is_number(ticket.get("total_cents")):
        errors.append("Order total is missing")

    for index, item in enumerate(items, start=1):
        name = item.get("product_name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Item {index}: name is empty")
        price = item.get("price_cents")
        if not _is_number(price) or price < 0:
            errors.append(f"Item {index}: price must be a non-negative number")
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"Item {index}: quantity must be a positive integer")

    if errors:
        raise PrintError("Ticket data is invalid, nothing was printed", details={"errors": errors})


# =============================================================================
# Sinks
# =============================================================================

class TicketSink:
    """One way of getting a ticket onto paper."""

    name = "sink"

    def is_available(self, user_agent: str | None) -> bool:
        return True

    def send(self, ticket: dict, data: bytes) -> PrintResult:
        raise NotImplementedError


class BridgeSink(TicketSink):
    """POST the ESC/POS stream to the print bridge listening on the terminal."""

    name = "bridge"

    def __init__(self, url: str, timeout: float = 3.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self.client = client

    def send(self, ticket: dict, data: bytes) -> PrintResult:
        headers = {"Content-Type": "application/octet-stream"}
        try:
            if self.client is not None:
                response = self.client.post(self.url, content=data, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(self.url, content=data, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.warning("Print bridge unreachable at %s: %s", self.url, exc)
            return PrintResult(False, self.name, "Print bridge unreachable")

        if not response.is_success:
            logger.warning("Print bridge answered %s for order %s", response.status_code, ticket.get("order_number"))
            return PrintResult(False, self.name, f"Print bridge answered HTTP {response.status_code}")
        return PrintResult(True, self.name, "Ticket sent to printer")


class UriSchemeSink(TicketSink):
    """
    Hand the ticket to a paired printer-driver app through `scheme:base64:<data>`.

    There is no response channel: success means the launcher accepted the
    URI. Without a launcher the URI is returned for the client to open.
    """

    name = "uri"

    def __init__(self, scheme: str = "rawbt", launcher: Callable[[str], Any] | None = None):
        self.scheme = scheme
        self.launcher = launcher

    def is_available(self, user_agent: str | None) -> bool:
        return bool(user_agent) and bool(MOBILE_USER_AGENT.search(user_agent))

    def build_uri(self, data: bytes) -> str:
        return f"{self.scheme}:base64:{base64.b64encode(data).decode('ascii')}"

    def send(self, ticket: dict, data: bytes) -> PrintResult:
        uri = self.build_uri(data)
        if self.launcher is not None:
            try:
                self.launcher(uri)
            except Exception as exc:
                logger.warning("Printer app handoff failed: %s", exc)
                return PrintResult(False, self.name, "Printer app handoff failed")
        return PrintResult(True, self.name, "Ticket handed to printer app", payload={"uri": uri})


class TempFileBrowserOpener:
    """Write the HTML ticket to a temp file and open it in the default browser."""

    def open(self, html: str):
        fd, path = tempfile.mkstemp(prefix="ticket-", suffix=".html")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(html)
        if not webbrowser.open(Path(path).as_uri()):
            self.close(path)
            return None
        return path

    def close(self, handle) -> None:
        try:
            os.unlink(handle)
        except FileNotFoundError:
            pass


class BrowserDialogSink(TicketSink):
    """
    Render an HTML ticket and open it for the platform print dialog.

    `opener.open(html)` returns a handle, or None when the window was
    blocked. After max_retries blocked attempts the sink gives up with a
    remediation message. Opened windows are closed after `timeout` seconds,
    whether or not the user printed.
    """

    name = "browser"

    def __init__(
        self,
        render: Callable[[dict], str],
        opener=None,
        max_retries: int = 3,
        timeout: float = 1.0,
    ):
        self.render = render
        self.opener = opener or TempFileBrowserOpener()
        self.max_retries = max(1, max_retries)
        self.timeout = timeout

    def send(self, ticket: dict, data: bytes) -> PrintResult:
        html = self.render(ticket)
        for attempt in range(1, self.max_retries + 1):
            handle = self.opener.open(html)
            if handle is not None:
                self._schedule_close(handle)
                return PrintResult(True, self.name, "Print dialog opened", payload={"attempts": attempt})
            logger.info("Print window blocked (attempt %s/%s)", attempt, self.max_retries)
        return PrintResult(False, self.name, POPUP_BLOCKED_MESSAGE, payload={"attempts": self.max_retries})

    def _schedule_close(self, handle) -> None:
        timer = threading.Timer(self.timeout, self.opener.close, args=(handle,))
        timer.daemon = True
        timer.start()


# =============================================================================
# Dispatcher
# =============================================================================

class PrintDispatcher:
    def __init__(self, sinks: list[TicketSink], ticket_format: TicketFormat | None = None):
        self.sinks = list(sinks)
        self.ticket_format = ticket_format or TicketFormat()

    def encode(self, ticket: dict) -> bytes:
        fmt = self.ticket_format
        return build_ticket(
            ticket,
            width=fmt.width,
            restaurant_name=fmt.restaurant_name,
            tagline=fmt.tagline,
            website=fmt.website,
            currency=fmt.currency,
        )

    def dispatch(self, ticket: dict, user_agent: str | None = None) -> PrintResult:
        """Try each available sink in order; first success wins."""
        try:
            validate_ticket(ticket)
        except PrintError as exc:
            return PrintResult(False, None, str(exc), payload=exc.details)

        data = self.encode(ticket)
        last: PrintResult | None = None
        for sink in self.sinks:
            if not sink.is_available(user_agent):
                continue
            result = sink.send(ticket, data)
            if result.success:
                return result
            last = result

        if last is not None and last.channel == BrowserDialogSink.name:
            return last
        return PrintResult(False, last.channel if last else None, NO_CHANNEL_MESSAGE)


def render_ticket_html(ticket: dict) -> str:
    """Browser ticket, rendered with the app's Jinja environment."""
    config = current_app.config
    currency = config.get("CURRENCY_LABEL", "dh")
    created_at = ticket["created_at"]
    return render_template(
        "ticket.html",
        ticket=ticket,
        restaurant_name=config.get("RESTAURANT_NAME", ""),
        tagline=config.get("RESTAURANT_TAGLINE", ""),
        website=config.get("RESTAURANT_WEBSITE", ""),
        timestamp=format_ticket_timestamp(created_at) if hasattr(created_at, "strftime") else str(created_at),
        money=lambda cents: format_money(cents, currency),
    )


def build_dispatcher(config: Mapping[str, Any]) -> PrintDispatcher:
    sinks: list[TicketSink] = []
    if config.get("PRINT_BRIDGE_ENABLED", True):
        sinks.append(BridgeSink(config["PRINT_BRIDGE_URL"], timeout=config.get("PRINT_BRIDGE_TIMEOUT", 3.0)))
    sinks.append(UriSchemeSink(config.get("PRINT_URI_SCHEME", "rawbt")))
    if config.get("PRINT_DIALOG_ENABLED", True):
        sinks.append(
            BrowserDialogSink(
                render_ticket_html,
                max_retries=config.get("PRINT_DIALOG_MAX_RETRIES", 3),
                timeout=config.get("PRINT_DIALOG_TIMEOUT", 1.0),
            )
        )
    return PrintDispatcher(sinks, TicketFormat.from_config(config))


def get_dispatcher() -> PrintDispatcher:
    """App-wide dispatcher, built lazily from config (tests may replace it)."""
    dispatcher = current_app.extensions.get("quickpos.print_dispatcher")
    if dispatcher is None:
        dispatcher = build_dispatcher(current_app.config)
        current_app.extensions["quickpos.print_dispatcher"] = dispatcher
    return dispatcher


def print_order(order, user_agent: str | None = None, dispatcher: PrintDispatcher | None = None) -> PrintResult:
    dispatcher = dispatcher or get_dispatcher()
    result = dispatcher.dispatch(ticket_from_order(order), user_agent=user_agent)
    if not result.success:
        logger.warning("Ticket for order #%s not printed: %s", order.order_number, result.message)
    return result
