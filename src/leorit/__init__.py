"""leorit - order lifecycle guards for a custom-apparel manufacturing marketplace."""

__version__ = "0.1.0"
