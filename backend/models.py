from pydantic import BaseModel

"""
Pydantic models for HTTP responses
"""

class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"
    connections: int = 0
    rooms: int = 0
