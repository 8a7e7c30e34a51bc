"""
Utility modules for the actor engine.
"""

from .formatting import format_percent, mask_account_number, mask_clabe, token_preview
from .config import Config

__all__ = ["format_percent", "mask_account_number", "mask_clabe", "token_preview", "Config"]
