"""
=============================================================================
STATIC RESOURCES
=============================================================================

Everything the chat server serves from disk: the two pages (index.html,
chat.html) and the files under /static/ (chat.js, style.css, images).

All of them come from one directory, static_dir. Without one configured,
the pages bundled with the package (smollchat/resources/) are used.

=============================================================================
RESOURCE LOOKUP
=============================================================================

Handlers never touch the filesystem directly. They go through a lookup
callback, name → bytes, that raises ResourceNotFound for anything that
doesn't exist:

    resources = StaticResources("/srv/chat")
    resources.lookup("chat.js")          → b"..."
    resources.lookup("missing.js")       → ResourceNotFound
    resources.lookup("../../etc/passwd") → ResourceNotFound

Tests swap in a dict-backed lookup (see ChatHandlers) to avoid disk I/O.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /static/../../../etc/passwd

is answered like any other missing file. The check:

    full_path = (root_dir / name).resolve()
    full_path.relative_to(root_dir)      # ValueError if outside root

resolve() follows "..", and symlinks pointing out of the root are caught
the same way.

=============================================================================
PAGE TEMPLATES
=============================================================================

The pages contain a single "{{}}" marker where the room name goes:

    <h1>Welcome to {{}}</h1>   →   <h1>Welcome to Room</h1>

Only the first marker is replaced. There is no template engine and no
escaping of the room name; it comes from the operator's own config.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..http.mime_types import ResourceNotFound


logger = logging.getLogger(__name__)


BUNDLED_RESOURCES = Path(__file__).resolve().parent.parent / "resources"

TEMPLATE_MARKER = "{{}}"


def render_template(template: str, room_name: str) -> str:
    """
    Replace the first "{{}}" marker with the room name.

        >>> render_template("<title>{{}}</title>", "Room")
        '<title>Room</title>'
    """
    return template.replace(TEMPLATE_MARKER, room_name, 1)


class StaticResources:
    """
    File-backed resource lookup rooted at one directory.

    Usage:

        resources = StaticResources(config.static_dir)

        script = resources.lookup("chat.js")
        page = render_template(resources.lookup("index.html").decode(), "Room")
    """

    def __init__(self, root_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            root_dir: Directory to serve from; None for the bundled pages.

        Raises:
            ValueError: If root_dir isn't a directory.
        """
        root = Path(root_dir) if root_dir else BUNDLED_RESOURCES
        self.root_dir = root.resolve()

        if not self.root_dir.is_dir():
            raise ValueError(f"Static directory does not exist: {root}")

    def resolve(self, name: str) -> Path:
        """
        Map a resource name to a file inside root_dir.

        Raises:
            ResourceNotFound: If the file is missing, is a directory, or
                              resolves outside root_dir.
        """
        full_path = (self.root_dir / name.lstrip("/")).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {name!r}")
            raise ResourceNotFound(f"Outside static directory: {name!r}") from None

        if not full_path.is_file():
            raise ResourceNotFound(f"File not found: {name!r}")

        return full_path

    def lookup(self, name: str) -> bytes:
        """
        Read a resource's bytes.

        Raises:
            ResourceNotFound: See resolve().
        """
        path = self.resolve(name)
        try:
            return path.read_bytes()
        except OSError as e:
            # Vanished or unreadable between resolve() and read
            raise ResourceNotFound(f"Cannot read {name!r}: {e}") from e

    __call__ = lookup
