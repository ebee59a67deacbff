"""Application package for the course management backend.

This package exposes the service, repository and model modules used by
the FastAPI application, plus the `quizzes` grading core. Individual
modules contain the concrete implementations and documentation.
"""
