"""
=============================================================================
MIME TYPE RESOLUTION
=============================================================================

Maps static file extensions to Content-Type values.

The table is deliberately small: the chat UI ships a stylesheet, a script
and a handful of images. A file whose extension isn't listed is not served
at all (UnknownMimeType → 404) rather than guessed at as
application/octet-stream. Browsers refuse to run a script served with the
wrong type anyway, so guessing buys nothing.

    .js   → text/javascript
    .css  → text/css
    .html → text/html
    .svg  → image/svg+xml
    .png  → image/png
    .ico  → image/x-icon

=============================================================================
"""

from pathlib import Path


class ResourceNotFound(Exception):
    """Raised when a route, page or static file doesn't exist."""


class UnknownMimeType(ResourceNotFound):
    """
    Raised for a static file whose extension has no known MIME type.

    Subclasses ResourceNotFound so both are answered the same way: 404,
    empty body.
    """


MIME_TYPES = {
    ".js": "text/javascript",      # Modern standard (was application/javascript)
    ".css": "text/css",
    ".html": "text/html",
    ".svg": "image/svg+xml",       # SVG is XML, hence +xml
    ".png": "image/png",
    ".ico": "image/x-icon",        # Favicon
}

TEXT_TYPES = {"text/javascript", "text/css", "text/html", "image/svg+xml"}


def get_mime_type(path: str | Path) -> str:
    """
    Get the MIME type for a file from its extension.

    Examples:
        >>> get_mime_type("chat.js")
        'text/javascript'

        >>> get_mime_type("/static/STYLE.CSS")
        'text/css'

    Raises:
        UnknownMimeType: For any extension not in MIME_TYPES.
    """
    extension = Path(path).suffix.lower()  # .CSS → .css
    try:
        return MIME_TYPES[extension]
    except KeyError:
        raise UnknownMimeType(f"No MIME type for {str(path)!r}") from None


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

    Text types get a charset parameter, binary types don't:

        >>> get_content_type("chat.js")
        'text/javascript; charset=utf-8'

        >>> get_content_type("logo.png")
        'image/png'
    """
    mime_type = get_mime_type(path)

    if mime_type in TEXT_TYPES:
        return f"{mime_type}; charset={charset}"

    return mime_type
