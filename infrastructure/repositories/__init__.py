from infrastructure.repositories.sqlite_settings_repository import SqliteSettingsRepository

__all__ = ["SqliteSettingsRepository"]
