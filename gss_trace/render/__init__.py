"""Human-readable projections of sample records."""

from .csv import (
    GENERIC_HEADER,
    PIPSQUEAK_HEADER,
    to_hex_string,
    short_id,
    render_generic_row,
    render_pipsqueak_row,
    render_row,
    header_for,
)

__all__ = [
    'GENERIC_HEADER',
    'PIPSQUEAK_HEADER',
    'to_hex_string',
    'short_id',
    'render_generic_row',
    'render_pipsqueak_row',
    'render_row',
    'header_for',
]
