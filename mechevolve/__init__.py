"""mechevolve — agents that learn from every code change."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("mechevolve")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
