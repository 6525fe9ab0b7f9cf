"""tmbridge API - FastAPI application"""
