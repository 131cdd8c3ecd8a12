import importlib.metadata

# Get the brew-fuzzy version using importlib.metadata
try:
    __version__ = importlib.metadata.version("brew-fuzzy")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev" # Fallback version
