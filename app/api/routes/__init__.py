from . import images, tiles, viewer

__all__ = ["images", "tiles", "viewer"]
