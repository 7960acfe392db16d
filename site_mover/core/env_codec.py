"""Parsing and rewriting of Laravel-style ``.env`` text.

Pure and stateless: nothing here touches the filesystem or the network.
``normalize_storage_paths`` is the only traversal guard for user-supplied
storage paths and must run before any path reaches a remote command.
"""

import re
from collections.abc import Iterable

from ..constants import DEFAULT_STORAGE_PATH

_LINE_SPLIT = re.compile(r"\r\n|\n|\r")
_NEEDS_QUOTING = re.compile(r"[\s#\"'$\\]")
_QUOTED_ESCAPE = re.compile(r"\\(.)", re.DOTALL)
_QUOTED_UNESCAPES = {"n": "\n", "r": "\r", "\\": "\\", '"': '"'}


class EnvironmentCodec:
    """Reads and edits key=value environment configuration text."""

    def parse(self, text: str) -> dict[str, str]:
        """Parse environment text into a key/value mapping.

        Blank lines and ``#`` comments are ignored, only the first ``=`` splits
        key from value, and one layer of matching quotes is removed.
        """
        values: dict[str, str] = {}

        for raw_line in _LINE_SPLIT.split(text or ""):
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, raw_value = line.split("=", 1)
            key = key.strip()
            if not key:
                continue

            values[key] = self._normalize_value(raw_value.strip())

        return values

    def update(self, text: str, key: str, value: str) -> str:
        """Set ``key`` to ``value``, replacing an existing line or appending one.

        A replaced line keeps its own line ending; an appended line uses CRLF
        when the text already does.
        """
        line = f"{key}={self.quote(value)}"
        pattern = re.compile(rf"^{re.escape(key)}=[^\r\n]*", re.MULTILINE)

        if pattern.search(text):
            return pattern.sub(lambda _match: line, text)

        newline = "\r\n" if "\r\n" in text else "\n"
        text = text.rstrip()
        return (f"{text}{newline}" if text else "") + line + newline

    def quote(self, value: str) -> str:
        """Render a value, double-quoting it when it would not survive bare."""
        if value != "" and not _NEEDS_QUOTING.search(value):
            return value

        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
        )
        return f'"{escaped}"'

    def normalize_storage_paths(self, paths: Iterable[str]) -> list[str]:
        """Trim, drop traversal attempts, strip slashes and dedupe storage paths.

        Order of first appearance is preserved. An empty result falls back to
        the default public storage path.
        """
        normalized: list[str] = []

        for path in paths:
            path = (path or "").strip()
            if not path or ".." in path.split("/"):
                continue

            path = path.strip("/")
            if not path or path in normalized:
                continue

            normalized.append(path)

        return normalized or [DEFAULT_STORAGE_PATH]

    def storage_paths_from_text(self, text: str) -> list[str]:
        """Split newline separated storage paths, dropping blank lines."""
        return [line.strip() for line in _LINE_SPLIT.split(text or "") if line.strip()]

    def mask_value(self, value: str) -> str:
        """Mask a connection endpoint, keeping only its first and last character."""
        if not value:
            return ""

        if len(value) <= 2:
            return "*" * len(value)

        return value[0] + "*" * (len(value) - 2) + value[-1]

    def _normalize_value(self, value: str) -> str:
        if not value:
            return ""

        if len(value) >= 2 and value[0] == value[-1] == '"':
            return _QUOTED_ESCAPE.sub(
                lambda m: _QUOTED_UNESCAPES.get(m.group(1), m.group(0)), value[1:-1]
            )

        if len(value) >= 2 and value[0] == value[-1] == "'":
            value = value[1:-1]

        return value.replace("\\n", "\n").replace("\\r", "\r")
