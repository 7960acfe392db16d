"""Site Mover - migrate Laravel sites between managed hosts over SSH."""

__version__ = "0.1.0"
