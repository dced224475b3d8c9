"""Ticket validation and sink fallback."""

from datetime import datetime

import httpx
import pytest

from quickpos.services import print_service
from quickpos.services.print_service import (
    BridgeSink,
    BrowserDialogSink,
    NO_CHANNEL_MESSAGE,
    POPUP_BLOCKED_MESSAGE,
    PrintDispatcher,
    PrintError,
    UriSchemeSink,
    validate_ticket,
)

from conftest import RecordingSink

ANDROID = "Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari/537.36"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/128.0"


def ticket(**overrides):
    data = {
        "order_id": 1,
        "order_number": 3,
        "bip_reference": None,
        "created_at": datetime(2026, 3, 4, 9, 0, 0),
        "total_cents": 4500,
        "items": [{"product_name": "Burger", "price_cents": 4500, "quantity": 1}],
    }
    data.update(overrides)
    return data


class FakeOpener:
    def __init__(self, handles):
        self.handles = list(handles)
        self.opened = 0
        self.closed = []

    def open(self, html):
        self.opened += 1
        return self.handles.pop(0) if self.handles else None

    def close(self, handle):
        self.closed.append(handle)


# =============================================================================
# Validation
# =============================================================================

def test_valid_ticket_passes():
    validate_ticket(ticket())


@pytest.mark.parametrize(
    "items",
    [
        [],
        [{"product_name": "Burger", "price_cents": 4500, "quantity": 0}],
        [{"product_name": "Burger", "price_cents": -1, "quantity": 1}],
        [{"product_name": " ", "price_cents": 100, "quantity": 1}],
        [{"product_name": "Burger", "price_cents": "45", "quantity": 1}],
        [{"product_name": "Burger", "price_cents": float("nan"), "quantity": 1}],
        [{"product_name": "Burger", "price_cents": float("inf"), "quantity": 1}],
    ],
)
def test_invalid_items_are_rejected(items):
    with pytest.raises(PrintError) as exc:
        validate_ticket(ticket(items=items))
    assert exc.value.details["errors"]


def test_missing_order_number_is_rejected():
    with pytest.raises(PrintError):
        validate_ticket(ticket(order_number=None))


def test_invalid_ticket_never_reaches_a_sink():
    sink = RecordingSink()
    result = PrintDispatcher([sink]).dispatch(
        ticket(items=[{"product_name": "Burger", "price_cents": 4500, "quantity": 0}])
    )

    assert not result.success
    assert result.channel is None
    assert sink.sent == []


# =============================================================================
# Dispatch
# =============================================================================

def test_first_successful_sink_wins():
    first, second = RecordingSink(), RecordingSink()
    result = PrintDispatcher([first, second]).dispatch(ticket())

    assert result.success
    assert len(first.sent) == 1
    assert second.sent == []


def test_falls_back_to_next_sink():
    broken, working = RecordingSink(succeed=False), RecordingSink()
    result = PrintDispatcher([broken, working]).dispatch(ticket())

    assert result.success
    assert len(broken.sent) == 1
    assert len(working.sent) == 1


def test_all_sinks_failing_reports_remediation():
    result = PrintDispatcher([RecordingSink(succeed=False)]).dispatch(ticket())
    assert not result.success
    assert result.message == NO_CHANNEL_MESSAGE


def test_bridge_posts_raw_escpos():
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["Content-Type"]
        seen["body"] = request.content
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    sink = BridgeSink("http://bridge.test/print", client=client)
    dispatcher = PrintDispatcher([sink])

    result = dispatcher.dispatch(ticket())

    assert result.success
    assert result.channel == "bridge"
    assert seen["content_type"] == "application/octet-stream"
    assert seen["body"] == dispatcher.encode(ticket())


def test_bridge_error_status_is_a_failure():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    result = BridgeSink("http://bridge.test/print", client=client).send(ticket(), b"x")
    assert not result.success


def test_bridge_unreachable_is_a_failure():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))
    result = BridgeSink("http://bridge.test/print", client=client).send(ticket(), b"x")
    assert not result.success


def test_uri_sink_only_on_mobile():
    sink = UriSchemeSink("rawbt")
    assert sink.is_available(ANDROID)
    assert not sink.is_available(DESKTOP)
    assert not sink.is_available(None)


def test_uri_sink_returns_base64_uri():
    launched = []
    sink = UriSchemeSink("rawbt", launcher=launched.append)

    result = PrintDispatcher([sink]).dispatch(ticket(), user_agent=ANDROID)

    assert result.success
    assert result.payload["uri"].startswith("rawbt:base64:")
    assert launched == [result.payload["uri"]]


def test_uri_sink_skipped_on_desktop():
    uri = UriSchemeSink("rawbt", launcher=lambda uri: None)
    fallback = RecordingSink()

    result = PrintDispatcher([uri, fallback]).dispatch(ticket(), user_agent=DESKTOP)

    assert result.channel == "recording"


def test_browser_dialog_retries_blocked_popups(monkeypatch):
    monkeypatch.setattr(BrowserDialogSink, "_schedule_close", lambda self, handle: self.opener.close(handle))
    opener = FakeOpener([None, "window-1"])
    sink = BrowserDialogSink(lambda t: "<html></html>", opener=opener, max_retries=3)

    result = sink.send(ticket(), b"")

    assert result.success
    assert result.payload["attempts"] == 2
    assert opener.closed == ["window-1"]


def test_browser_dialog_gives_up_after_ceiling():
    opener = FakeOpener([])
    sink = BrowserDialogSink(lambda t: "<html></html>", opener=opener, max_retries=3)

    result = PrintDispatcher([sink]).dispatch(ticket())

    assert not result.success
    assert opener.opened == 3
    assert result.message == POPUP_BLOCKED_MESSAGE


def test_html_ticket_renders(app):
    with app.test_request_context():
        html = print_service.render_ticket_html(ticket(bip_reference="9"))
    assert "COMMANDE #3" in html
    assert "BIP: 9" in html
    assert "45.00 dh" in html
    assert "window.print()" in html


def test_build_dispatcher_respects_config():
    dispatcher = print_service.build_dispatcher({
        "PRINT_BRIDGE_ENABLED": False,
        "PRINT_DIALOG_ENABLED": False,
        "PRINT_URI_SCHEME": "rawbt",
        "TICKET_WIDTH": 48,
    })
    assert [s.name for s in dispatcher.sinks] == ["uri"]
    assert dispatcher.ticket_format.width == 48
