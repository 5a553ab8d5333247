# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Boot and shutdown status lines on the console:

    [  OK  ] Started console
    [FAILED] Failed to start modem
"""

from __future__ import annotations

from typing import TextIO

from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

TAGS = {
    "ok": "  OK  ",
    "failed": "FAILED",
    "info": " INFO ",
    "warn": " WARN ",
}


def _default_style_dict() -> dict[str, str]:
    return {
        "ok": "#44bb44 bold",
        "failed": "#dd3333 bold",
        "info": "#5f87d7 bold",
        "warn": "#d7af00 bold",
        "bracket": "",
        "message": "",
    }


def build_style(overrides: dict[str, str] | None = None) -> Style:
    base = _default_style_dict()
    for k, v in list((overrides or {}).items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


class Console:
    def __init__(
        self,
        style_overrides: dict[str, str] | None = None,
        file: TextIO | None = None,
    ):
        self._style = build_style(style_overrides)
        self._file = file

    def line(self, kind: str, message: str) -> None:
        text = FormattedText(
            [
                ("class:bracket", "["),
                (f"class:{kind}", TAGS[kind]),
                ("class:bracket", "] "),
                ("class:message", message),
            ]
        )
        print_formatted_text(text, style=self._style, file=self._file)

    def ok(self, message: str) -> None:
        self.line("ok", message)

    def failed(self, message: str) -> None:
        self.line("failed", message)

    def info(self, message: str) -> None:
        self.line("info", message)

    def warn(self, message: str) -> None:
        self.line("warn", message)
