from config.settings import settings, IS_PRODUCTION, MEDIA_DIR  # noqa: F401
