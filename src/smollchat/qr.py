"""
Terminal QR code for the chat URL.

With --qrcode, the startup banner is followed by the URL rendered as a QR
code, so phones on the same network can join by pointing a camera at the
terminal.
"""

import sys
import logging
from typing import Optional, TextIO

import qrcode


logger = logging.getLogger(__name__)


def make_qr_code(url: str, border: int = 1) -> qrcode.QRCode:
    """Build a QR code for url, sized to fit the data."""
    qr = qrcode.QRCode(border=border)
    qr.add_data(url)
    qr.make(fit=True)
    return qr


def render_qr_code(url: str, out: Optional[TextIO] = None) -> None:
    """
    Print url as a QR code using Unicode half-block characters.

    Inverted, since terminals are usually light text on a dark background
    and scanners expect dark modules on light.
    """
    out = out or sys.stdout
    make_qr_code(url).print_ascii(out=out, invert=True)
    out.flush()
    logger.debug(f"Rendered QR code for {url}")
