"""Bundled probe registry declarations."""
