"""UI layer -- Rich dashboard, output formatters and logging setup."""

from .dashboard import (
    LiveView,
    PhaseBar,
    console,
    downsample,
    print_banner,
    print_final_results,
    print_round_trips,
    print_transfer_summary,
    sparkline,
)
from .logging_setup import configure_logging
from .output import create_result_json, format_text_result, save_json

__all__ = [
    "LiveView",
    "PhaseBar",
    "configure_logging",
    "console",
    "create_result_json",
    "downsample",
    "format_text_result",
    "print_banner",
    "print_final_results",
    "print_round_trips",
    "print_transfer_summary",
    "save_json",
    "sparkline",
]
