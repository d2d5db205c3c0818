"""
HTTP trigger surface for the sync engines.

Run with:
    uvicorn killboard_data.api.main:app
"""
