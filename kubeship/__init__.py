"""kubeship — build, deploy and release component apps onto a KubeFox platform."""

__version__ = "0.1.0"
