from .response_utils import render_error, render_json, robust_parse_text

__all__ = ["render_error", "render_json", "robust_parse_text"]
