"""Pydantic schemas for API request/response."""
from minutagen.schemas.minutes import ErrorResponse, MinutesResponse, YoutubeRequest

__all__ = ["ErrorResponse", "MinutesResponse", "YoutubeRequest"]
