"""Deterministic output file names."""

from urllib.parse import urlsplit

FILE_PREFIX = "qrcode"
FILE_EXTENSION = ".png"

# Schemes browsers always give a host, even when written without "//"
SPECIAL_SCHEMES = {"http", "https", "ftp", "ws", "wss"}


def url_hostname(text: str) -> str | None:
    """Hostname of *text* if it parses as an absolute URL, else None.

    An absolute URL needs a scheme and a host. For web schemes the slashes
    are optional, as in browsers: ``https:example.com`` and
    ``https:/example.com`` both have host ``example.com``. Bare domains
    (``example.com``) and host-less URIs such as ``mailto:`` don't count,
    so they fall back to the index-only name.
    """
    try:
        parts = urlsplit(text.strip())
        if parts.scheme in SPECIAL_SCHEMES and not parts.netloc:
            rest = text.strip()[len(parts.scheme) + 1:].lstrip("/\\")
            parts = urlsplit(f"{parts.scheme}://{rest}")
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return hostname


def derive_file_name(text: str, index: int) -> str:
    """File stem for the entry at 1-based *index*.

    ``https://www.a.com/x`` at 2 -> ``qrcode_a.com_2``; non-URLs -> ``qrcode_<index>``.
    The index suffix keeps names unique when hostnames repeat.
    """
    hostname = url_hostname(text)
    if hostname is None:
        return f"{FILE_PREFIX}_{index}"
    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    return f"{FILE_PREFIX}_{hostname}_{index}"
