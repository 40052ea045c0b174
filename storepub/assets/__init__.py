"""Store asset checks."""

from .checker import AssetChecker, AssetReport, FileAssetChecker

__all__ = ["AssetChecker", "AssetReport", "FileAssetChecker"]
