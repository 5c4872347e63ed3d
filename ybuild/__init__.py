"""ybuild — hermetic, reproducible builds from a ``.yourbase.yml`` manifest."""

__version__ = "0.9.0"
