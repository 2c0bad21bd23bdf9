"""
Serving — FastAPI application exposing ingestion, querying and chunk
management over HTTP.
"""
