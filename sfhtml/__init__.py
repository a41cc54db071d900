"""Headers, anchors, diff editing with history, live serving and CDP browser control for single-file HTML apps."""

__version__ = "0.3.0"