# -*- coding: utf-8 -*-
"""Failures that abort an episode request.

Each class carries the HTTP status the server answers with; the Telegram bot
and the command line only use the message.
"""

from __future__ import annotations


class PipelineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(PipelineError):
    status_code = 400


class Busy(PipelineError):
    status_code = 503


class NotFound(PipelineError):
    status_code = 404


class FetchFailure(PipelineError):
    status_code = 502


class InternalError(PipelineError):
    status_code = 500


__all__ = [
    "PipelineError",
    "InvalidRequest",
    "Busy",
    "NotFound",
    "FetchFailure",
    "InternalError",
]
