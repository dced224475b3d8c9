# Overview: ESC/POS ticket encoding for 58mm/80mm thermal printers.

"""
Kitchen ticket as a raw ESC/POS byte stream.

Layout: printer init, centred bold double-size restaurant name, tagline,
order number, optional BIP (pager) line, timestamp, dashed rule, one line per
item (name, quantity, line total), dashed rule, centred bold total, thank-you
footer and paper cut.

Text goes through a CP850 substitution table so French menu names print with
their accents. Characters missing from the table are sent as their code point
truncated to one byte.
"""

from __future__ import annotations

from datetime import datetime

from .time_utils import format_ticket_timestamp

ESC = b"\x1b"
GS = b"\x1d"

INIT = ESC + b"@"
ALIGN_LEFT = ESC + b"a\x00"
ALIGN_CENTER = ESC + b"a\x01"
BOLD_ON = ESC + b"E\x01"
BOLD_OFF = ESC + b"E\x00"
DOUBLE_SIZE_ON = ESC + b"!\x30"
NORMAL_SIZE = ESC + b"!\x00"
FEED_AND_CUT = GS + b"V\x41\x03"

QTY_COLUMN = 4
TOTAL_COLUMN = 11
MIN_NAME_COLUMN = 8

ORDER_LABEL = "COMMANDE"
BIP_LABEL = "BIP"
TOTAL_LABEL = "TOTAL"
THANK_YOU = "Merci de votre visite !"

CP850 = {
    "Ç": 0x80, "ü": 0x81, "é": 0x82, "â": 0x83, "ä": 0x84, "à": 0x85,
    "å": 0x86, "ç": 0x87, "ê": 0x88, "ë": 0x89, "è": 0x8A, "ï": 0x8B,
    "î": 0x8C, "ì": 0x8D, "Ä": 0x8E, "Å": 0x8F, "É": 0x90, "æ": 0x91,
    "Æ": 0x92, "ô": 0x93, "ö": 0x94, "ò": 0x95, "û": 0x96, "ù": 0x97,
    "ÿ": 0x98, "Ö": 0x99, "Ü": 0x9A, "ø": 0x9B, "£": 0x9C, "Ø": 0x9D,
    "á": 0xA0, "í": 0xA1, "ó": 0xA2, "ú": 0xA3, "ñ": 0xA4, "Ñ": 0xA5,
    "ª": 0xA6, "º": 0xA7, "¿": 0xA8, "®": 0xA9, "½": 0xAB, "¼": 0xAC,
    "¡": 0xAD, "«": 0xAE, "»": 0xAF, "Á": 0xB5, "Â": 0xB6, "À": 0xB7,
    "©": 0xB8, "ã": 0xC6, "Ã": 0xC7, "Ê": 0xD2, "Ë": 0xD3, "È": 0xD4,
    "Í": 0xD6, "Î": 0xD7, "Ï": 0xD8, "Ì": 0xDE, "Ó": 0xE0, "ß": 0xE1,
    "Ô": 0xE2, "Ò": 0xE3, "õ": 0xE4, "Õ": 0xE5, "µ": 0xE6, "Ú": 0xE9,
    "Û": 0xEA, "Ù": 0xEB, "ý": 0xEC, "Ý": 0xED, "°": 0xF8,
}


def encode_cp850(text: str) -> bytes:
    out = bytearray()
    for ch in text:
        code = CP850.get(ch)
        if code is None:
            code = ord(ch) & 0xFF
        out.append(code)
    return bytes(out)


def format_money(cents: int, currency: str) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    amount = f"{sign}{cents // 100}.{cents % 100:02d}"
    return f"{amount} {currency}" if currency else amount


def format_item_line(name: str, quantity: int, line_total: str, width: int) -> str:
    """
    `name(padded) qty(right-aligned) total(right-aligned)` in `width` columns.

    The quantity and total columns grow to fit their text plus one separating
    space, and the name column gives up the room; long names are cut so at
    least one space always precedes the quantity. Only when the name column
    would drop below MIN_NAME_COLUMN does the line exceed `width`.
    """
    qty = f"x{quantity}"
    qty_width = max(QTY_COLUMN, len(qty) + 1)
    total_width = max(TOTAL_COLUMN, len(line_total) + 1)
    name_width = max(width - qty_width - total_width, MIN_NAME_COLUMN)
    name = name[: name_width - 1] if len(name) >= name_width else name
    return f"{name:<{name_width}}{qty:>{qty_width}}{line_total:>{total_width}}"


def rule(width: int) -> str:
    return "-" * width


def build_ticket(
    ticket: dict,
    *,
    width: int = 32,
    restaurant_name: str = "",
    tagline: str = "",
    website: str = "",
    currency: str = "dh",
) -> bytes:
    """
    Encode a validated ticket dict (see print_service.ticket_from_order).

    created_at may be a datetime or anything with a sensible str().
    """
    chunks: list[bytes] = []

    def text(line: str = "") -> None:
        chunks.append(encode_cp850(line + "\n"))

    chunks.append(INIT)
    chunks.append(ALIGN_CENTER)

    if restaurant_name:
        chunks.append(BOLD_ON + DOUBLE_SIZE_ON)
        text(restaurant_name)
        chunks.append(NORMAL_SIZE + BOLD_OFF)
    if tagline:
        text(tagline)
    text(rule(width))

    chunks.append(BOLD_ON)
    text(f"{ORDER_LABEL} #{ticket['order_number']}")
    if ticket.get("bip_reference"):
        text(f"{BIP_LABEL}: {ticket['bip_reference']}")
    chunks.append(BOLD_OFF)

    created_at = ticket["created_at"]
    if isinstance(created_at, datetime):
        text(format_ticket_timestamp(created_at))
    else:
        text(str(created_at))
    text(rule(width))

    chunks.append(ALIGN_LEFT)
    for item in ticket["items"]:
        line_total = format_money(item["price_cents"] * item["quantity"], currency)
        text(format_item_line(item["product_name"], item["quantity"], line_total, width))
    text(rule(width))

    chunks.append(ALIGN_CENTER + BOLD_ON + DOUBLE_SIZE_ON)
    text(f"{TOTAL_LABEL}: {format_money(ticket['total_cents'], currency)}")
    chunks.append(NORMAL_SIZE + BOLD_OFF)
    text(rule(width))

    text(THANK_YOU)
    if website:
        text(website)
    chunks.append(b"\n\n\n")
    chunks.append(FEED_AND_CUT)

    return b"".join(chunks)
