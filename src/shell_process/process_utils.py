#!/usr/bin/env python3
"""Process utilities built on psutil."""

from __future__ import annotations

import contextlib
import warnings

import psutil

_STOPPED_STATES = frozenset({psutil.STATUS_STOPPED, psutil.STATUS_TRACING_STOP})


def inspect_process(pid: int) -> psutil.Process | None:
    """Return a psutil handle for ``pid``, or None if it is already gone."""
    try:
        return psutil.Process(pid)
    except psutil.Error:
        return None


def is_stopped(process: psutil.Process | None) -> bool:
    """True if the process is stopped by a signal (SIGSTOP, SIGTSTP, ...)."""
    if process is None:
        return False
    try:
        return process.status() in _STOPPED_STATES
    except psutil.Error:
        return False


def get_process_tree_info(pid: int) -> str:
    """Get information about a process and its children."""
    try:
        process = psutil.Process(pid)
        info = [f"Process {pid} ({process.name()})"]
        info.append(f"Status: {process.status()}")
        info.append(f"CPU Times: {process.cpu_times()}")

        children = process.children(recursive=True)
        if children:
            info.append("\nChild processes:")
            for child in children:
                info.append(f"  Child {child.pid} ({child.name()})")
                info.append(f"    Status: {child.status()}")

        return "\n".join(info)
    except psutil.Error:
        return f"Could not get process info for PID {pid}"


def signal_children(pid: int, sig: int) -> int:
    """Send ``sig`` to every descendant of ``pid``. Returns how many were signalled."""
    try:
        children = psutil.Process(pid).children(recursive=True)
    except psutil.Error as e:
        warnings.warn(f"Error listing children of {pid}: {e}", UserWarning, stacklevel=2)
        return 0

    signalled = 0
    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.send_signal(sig)
            signalled += 1
    return signalled
