"""Client-side synchronisation of script files with a DOCUMENTS server."""

__version__ = "1.0.0"
