"""
Service Module - HTTP API for a Configured Pipeline

- main: FastAPI application (POST /preprocess, GET /pipeline, GET /health)
- models: Pydantic request/response schemas
"""
