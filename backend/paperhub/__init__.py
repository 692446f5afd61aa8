"""PaperHub core: entity models, storage engines, runtime switching and migration."""

__version__ = "0.1.0"
