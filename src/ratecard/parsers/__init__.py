from .channel_rules import parse_channel_rules
from .directory import find_directory_sheet, parse_directory
from .rate_table import extract_rates

__all__ = ["extract_rates", "find_directory_sheet", "parse_directory", "parse_channel_rules"]
