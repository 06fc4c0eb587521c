"""Scrapers and the machinery that runs them."""
