"""Scroll-driven data story presenter."""
