"""UI layer -- Rich dashboard, output formatters, and caller-side persistence."""

from .dashboard import (
    PHASE_LABELS,
    ProgressDisplay,
    console,
    create_histogram,
    print_final_results,
    print_header,
    print_history,
    print_latency_details,
)
from .output import create_result_json, format_text_result, save_json

__all__ = [
    "PHASE_LABELS",
    "ProgressDisplay",
    "console",
    "create_histogram",
    "create_result_json",
    "format_text_result",
    "print_final_results",
    "print_header",
    "print_history",
    "print_latency_details",
    "save_json",
]
