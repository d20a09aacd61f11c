"""
FastAPI application for the Voyageur Nest backend.
"""
