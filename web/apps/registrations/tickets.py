"""Ticket codes and scannable ticket artifacts.

Ticket codes are opaque, prefixed for humans and drawn from ``secrets``.
Uniqueness against the ledger is the orchestrator's job. The artifact is a
QR code rendered by ``segno`` as a PNG data URI; the same code always
renders to the same image.
"""

import secrets

import segno

DEFAULT_PREFIX = "EVT"
CODE_BYTES = 8


def new_ticket_code(prefix: str = DEFAULT_PREFIX) -> str:
    """Return a fresh ticket code such as ``EVT-3F9A0C17B2D4E6A8``."""
    return f"{prefix}-{secrets.token_hex(CODE_BYTES).upper()}"


def render_ticket(ticket_code: str) -> str:
    """Render ``ticket_code`` as a QR code PNG data URI.

    Args:
        ticket_code: Code to encode.

    Returns:
        str: ``data:image/png;base64,...`` suitable for email or ``<img>``.

    Raises:
        ValueError: If the code is empty.
    """
    if not ticket_code:
        raise ValueError("EMPTY_TICKET_CODE")
    qr = segno.make_qr(ticket_code, error="m")
    return qr.png_data_uri(scale=6, border=2)
