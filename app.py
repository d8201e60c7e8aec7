#!/usr/bin/env python3
"""
app.py - Hugging Face Spaces entrypoint for the college regression Gradio demo.

Spaces expects a top-level variable referencing the Gradio app. This file
imports the builder from college_regression/gradio_ui.py and exposes it as
`demo`. Do NOT call demo.launch() here.
"""

from college_regression.gradio_ui import _build_ui

demo = _build_ui()
