"""Layering and convention checks for the mvpflow source tree."""
