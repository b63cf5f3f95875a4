"""SugarWatch: glucose monitoring coordination between an athlete and parents."""

__version__ = "0.1.0"
