"""
Configuration centrale de l'application via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base locale (SQLite embarquée, source de vérité hors-ligne)
    DATABASE_URL: str = "sqlite:///./presence.db"

    # Base distante (API REST PostgREST / Supabase)
    REMOTE_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 30.0

    # Détection de connectivité
    CONNECTIVITY_CHECK_URL: str = "http://localhost:54321/rest/v1/"
    CONNECTIVITY_TIMEOUT_SECONDS: float = 3.0

    # Synchronisation automatique au retour du réseau
    AUTO_SYNC_ENABLED: bool = True
    CONNECTIVITY_POLL_SECONDS: int = 30

    # Environnement
    ENV: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
