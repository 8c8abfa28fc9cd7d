"""Errors raised (or recorded) while generating a collection."""

from __future__ import annotations


class TraitForgeError(Exception):
    """Base class for generation failures."""


class ValidationError(TraitForgeError):
    """The batch request is malformed (count out of range, missing name)."""


class NotFoundError(TraitForgeError):
    """The project, or its layers, could not be found."""


class ConflictError(TraitForgeError):
    """Editions already exist and overwrite was not requested."""


class CapacityError(TraitForgeError):
    """No new unique combination was found within the retry budget."""

    def __init__(self, message: str, attempts: int = 0, produced: int = 0):
        super().__init__(message)
        self.attempts = attempts
        self.produced = produced


class ArtifactWriteError(TraitForgeError):
    """A rendered image or metadata record could not be persisted."""

    def __init__(self, message: str, edition: int | None = None):
        super().__init__(message)
        self.edition = edition


class AssetUnavailableWarning(UserWarning):
    """A source image could not be loaded; the asset was left out of the edition."""

    def __init__(self, asset_id: str, filename: str, reason: str = ""):
        super().__init__(f"Asset unavailable: {filename} ({asset_id}){': ' + reason if reason else ''}")
        self.asset_id = asset_id
        self.filename = filename
        self.reason = reason
