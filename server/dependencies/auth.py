import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-Api-Key", auto_error=False)


async def verify_api_key(request: Request, x_api_key: str | None = Security(api_key_header)) -> None:
    """Verify the X-Api-Key header against API_SERVER_API_KEY.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
        ConfigurationError: If API_SERVER_API_KEY is not set (rendered as 503).
    """
    expected_key = request.app.state.helper_config.get_string_val("API_SERVER_API_KEY")
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), expected_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
