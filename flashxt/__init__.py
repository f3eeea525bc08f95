"""Android flashing backend: discovery, bundle acquisition and sequential flashing"""

__version__ = "1.0.0"
