from secure_assets.models.asset import Asset

__all__ = ["Asset"]
