import secrets

from fastapi import Header, HTTPException, Request


async def verify_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    """Check the X-Api-Key header against API_SERVER_API_KEY.

    Raises:
        HTTPException: 401 if the header is missing or does not match.
        ConfigurationError: If API_SERVER_API_KEY is not set.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    if x_api_key is None or not secrets.compare_digest(x_api_key, expected_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
