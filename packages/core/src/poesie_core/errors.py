"""Exception hierarchy shared by the ingest service and the API."""

from __future__ import annotations


class PoesieError(Exception):
    """Base exception for all poesie errors."""


class MissingFieldsError(PoesieError):
    """Required import fields are absent; nothing was written."""

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Missing fields: {', '.join(fields)}")


class PoemNotFoundError(PoesieError):
    """Poem identity does not exist."""

    def __init__(self, poem: object) -> None:
        self.poem = poem
        super().__init__(f"Poem not found: {poem}")


class SourceError(PoesieError):
    """A local file or remote page could not be turned into a poem."""


class StaleSnapshotError(PoesieError):
    """A poem's stored lines changed between reading them and writing new tokens."""

    def __init__(self, poem_id: object) -> None:
        self.poem_id = poem_id
        super().__init__(f"Lines of poem {poem_id} changed during re-tokenization")
