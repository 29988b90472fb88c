"""Configuration loading for scripts and embedding applications."""

from .config_loader import load_settings

__all__ = ["load_settings"]
