from __future__ import annotations


class ModCardError(Exception):
    """Base error for everything the mod card renderer raises."""


class QualityRangeError(ModCardError, ValueError):
    def __init__(self, quality: object, *, field: str = "quality") -> None:
        super().__init__(f"{field} must be within [0, 100], got {quality!r}")
        self.quality = quality
        self.field = field


class UnsupportedFormatError(ModCardError, ValueError):
    def __init__(self, fmt: object) -> None:
        super().__init__(f"unsupported output format: {fmt!r}")
        self.format = fmt


class AssetFetchError(ModCardError):
    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"failed to fetch asset {name}: {reason}")
        self.name = name
        self.reason = reason


class ExportError(ModCardError):
    def __init__(self, fmt: str) -> None:
        super().__init__(f"failed to export as {fmt}")
        self.format = fmt
