import os
import logging
from dotenv import load_dotenv

from interest_finder.core.exceptions import ConfigurationError

# Load variables from a local .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Settings:
    """
    Process configuration read from the environment.

    Values are read when the object is built, so tests can create a fresh
    instance after patching the environment.
    """

    def __init__(self):
        # Identity provider (Firebase ID tokens)
        self.FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "")

        # Facebook Graph API
        self.FACEBOOK_API_VERSION: str = os.getenv("FACEBOOK_API_VERSION", "v18.0")
        self.FACEBOOK_ACCESS_TOKEN: str = os.getenv("FACEBOOK_ACCESS_TOKEN", "")
        self.FACEBOOK_AD_ACCOUNT_ID: str = os.getenv("FACEBOOK_AD_ACCOUNT_ID", "")
        self.FACEBOOK_APP_ID: str = os.getenv("FACEBOOK_APP_ID", "")
        self.FACEBOOK_APP_SECRET: str = os.getenv("FACEBOOK_APP_SECRET", "")

        # Email relay
        self.EMAIL_USER: str = os.getenv("EMAIL_USER", "")
        self.EMAIL_APP_PASSWORD: str = os.getenv("EMAIL_APP_PASSWORD", "")
        self.ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "")
        self.SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.SMTP_PORT: int = int(os.getenv("SMTP_PORT", "465"))

        # Database
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")

        # Runtime
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")

    @property
    def graph_base_url(self) -> str:
        return f"https://graph.facebook.com/{self.FACEBOOK_API_VERSION}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def require(self, *names: str) -> None:
        """
        Raises ConfigurationError if any of the named settings is empty.

        Args:
            names: Attribute names, e.g. "FACEBOOK_AD_ACCOUNT_ID"
        """
        missing = [name for name in names if not getattr(self, name, "")]
        if missing:
            logger.error(f"[config] Missing required settings: {', '.join(missing)}")
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")


settings = Settings()
