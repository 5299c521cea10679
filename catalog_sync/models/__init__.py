from catalog_sync.models.catalog import ProfileSnapshot, TrackedSource, University, UpdateLog

__all__ = ["University", "TrackedSource", "ProfileSnapshot", "UpdateLog"]
