from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
import os

# Keep the real key in the environment or a secret store in production
API_KEY = os.getenv("STUDY_GUARDIAN_API_KEY", "your-secret-key-change-me")

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

async def verify_api_key(api_key: str = Security(api_key_header)):
    """Verify API key for authentication"""
    if not api_key or api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key"
        )
    return api_key

async def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """Acting user, as asserted by the trusted gateway in front of the API"""
    if x_user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-Id header"
        )
    return x_user_id
