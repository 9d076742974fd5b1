"""Bridge smart-home device capabilities to accessory/service/characteristic hubs."""

__version__ = "0.1.0"
