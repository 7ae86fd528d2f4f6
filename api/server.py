"""API server entry point.

Usage:
    # Via script
    fieldstore-api

    # Via uvicorn directly
    uvicorn api.main:create_app --factory --reload

    # Via this module
    python -m api.server
"""

from fieldstore.config import get_settings


def main() -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()

    print("Starting Field Store API server...")
    print(f"  Host: {settings.api_host}:{settings.api_port}")
    if settings.database_url:
        print("  Database: external (FIELDSTORE_DATABASE_URL)")
    else:
        print(f"  Database: embedded ({settings.data_dir})")
    print()

    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
