"""Adapters de infraestructura: listado de assets exportados."""

from .s3_asset_source import S3ExportedAssetSource

__all__ = ["S3ExportedAssetSource"]
