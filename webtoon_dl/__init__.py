# -*- coding: utf-8 -*-
"""Download webtoon episodes as PDF files or inline images."""

__version__ = "1.0.0"
