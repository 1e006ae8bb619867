"""miLight and Sonoff DIY bridge service."""

__version__ = "1.0.0"
