"""
Backend package for the portfolio website.

This package provides a FastAPI application that stores contact form
submissions and project entries in SQLite and serves them as JSON.
"""
