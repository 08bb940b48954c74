"""Collaborative OpenSCAD session service with AI-assisted code generation."""

__version__ = "0.1.0"
