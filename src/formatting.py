"""
formatting.py - currency and date rendering shared by the UI and exports

All user-visible amounts are in Kenya Shillings; there is no currency switch.
Month abbreviations are spelled out here so labels do not depend on the
process locale.
"""

import datetime

CURRENCY = "KES"
MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                       "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_kes(amount) -> str:
    """`KES 1,234.50` style string; None counts as zero."""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    return f"{CURRENCY} {value:,.2f}"


def format_date(value) -> str:
    """dd-MM-yyyy, or "" when there is no date."""
    if not value:
        return ""
    return value.strftime("%d-%m-%Y")


def format_datetime(value: datetime.datetime) -> str:
    """dd-MM-yyyy HH:mm:ss"""
    return value.strftime("%d-%m-%Y %H:%M:%S")


def format_month_label(month_start) -> str:
    """"Jan 2024" for any date inside January 2024."""
    return f"{MONTH_ABBREVIATIONS[month_start.month - 1]} {month_start.year}"


def filename_timestamp(value: datetime.datetime) -> str:
    """yyyy-MM-dd_HH-mm, used in export file names."""
    return value.strftime("%Y-%m-%d_%H-%M")


def format_number(value) -> str:
    # 40.0 -> "40", 40.5 -> "40.5"
    number = float(value or 0)
    if number.is_integer():
        return str(int(number))
    return str(number)
