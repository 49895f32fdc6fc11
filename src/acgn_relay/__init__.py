"""acgn.es search feed -> Telegram keyword/regex relay"""

__version__ = "0.1.0"
