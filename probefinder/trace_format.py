#!/usr/bin/env python3
"""
Text rendering of argument requests and kprobe trace event definitions.
"""

import logging
from typing import Optional

from .models import ArgumentRequest, TraceArgument, TraceEvent

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "probe"


def synthesize_argument_name(arg: ArgumentRequest) -> str:
    """Render an argument request back into its source syntax.

    Args:
        arg: Requested variable with optional field chain and type

    Returns:
        e.g. 'ctx->flags[2]:u32'
    """
    text = arg.var
    if arg.field is not None:
        for field in arg.field:
            if field.is_subscript:
                text += field.name
            else:
                text += f"{'->' if field.is_pointer_access else '.'}{field.name}"
    if arg.type:
        text += f":{arg.type}"
    return text


def synthesize_trace_argument(arg: TraceArgument) -> str:
    """Render a trace argument in kprobe fetch-arg syntax.

    Each reference wraps the value in a dereference, the first reference
    innermost: refs (16, 4) on %di give '+4(+16(%di))'.
    """
    text = arg.value
    for offset in arg.refs:
        text = f"{offset:+d}({text})"
    if arg.type:
        text += f":{arg.type}"
    return text


def synthesize_probe_point(event: TraceEvent) -> str:
    """Render the attach point of an event, 'symbol+offset' or a raw address."""
    if event.symbol:
        return f"{event.symbol}+{event.offset}"
    return f"0x{event.address:x}"


def synthesize_trace_event(event: TraceEvent, name: str,
                           group: Optional[str] = None) -> str:
    """Render a kprobe_events definition line.

    Args:
        event: Resolved trace event
        name: Event name
        group: Event group, defaults to 'probe'

    Returns:
        e.g. 'p:probe/foo foo+16 ctx=+8(%di):u32'
    """
    parts = [f"p:{group or DEFAULT_GROUP}/{name}", synthesize_probe_point(event)]
    for arg in event.args:
        parts.append(f"{arg.name}={synthesize_trace_argument(arg)}")
    return ' '.join(parts)


def default_event_name(event: TraceEvent, index: int = 0) -> str:
    """Derive an event name from the probed symbol."""
    base = event.symbol or f"addr_{event.address:x}"
    return base if index == 0 else f"{base}_{index}"
