from core.settings import Settings

# Settings singleton, owned by the application lifespan
_settings: Settings | None = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure the app lifespan or init_settings() ran."
    return _settings


def init_settings(settings: Settings | None = None) -> Settings:
    """Initialize the settings singleton, optionally with a prebuilt instance."""
    global _settings
    if _settings is None or settings is not None:
        _settings = settings or Settings()
    return _settings


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None
