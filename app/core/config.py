# app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",          # unknown keys in .env are ignored
    )

    APP_ENV: str = "local"
    APP_NAME: str = "USJ Ticket Purchase API"
    API_PREFIX: str = "/api"

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # GET /purchase/{id} only returns the tail of the job log
    JOB_LOG_TAIL: int = 20

    # Vision model used to read the checkout CAPTCHA
    OPENAI_API_KEY: str | None = None
    CAPTCHA_MODEL: str = "gpt-4o"

    TARGET_URL: str = "https://www.usjticketing.com/expressPass"

    # Browser
    HEADLESS: bool = False
    SLOW_MO_MS: int = 20
    VIEWPORT_WIDTH: int = 1024
    VIEWPORT_HEIGHT: int = 900
    ACTION_TIMEOUT_MS: int = 30000
    NAVIGATION_TIMEOUT_MS: int = 60000
    KEEP_OPEN_SECONDS: int = 0

    # Step runner
    STEP_RETRIES: int = 3
    STEP_RETRY_DELAY_MS: int = 2000
    STEP_SETTLE_MS: int = 1000

    SCREENSHOTS_ENABLED: bool = True
    SCREENSHOT_DIR: str = "./screenshots"

    # Customer details for the order form
    CUSTOMER_FIRST_NAME: str = ""
    CUSTOMER_LAST_NAME: str = ""
    CUSTOMER_PHONE_COUNTRY: str = ""      # text typed into the dial-code filter, e.g. "isra"
    CUSTOMER_PHONE_COUNTRY_LABEL: str = ""  # option to pick, e.g. "Israel+972"
    CUSTOMER_PHONE: str = ""
    CUSTOMER_ADDRESS: str = ""
    CUSTOMER_EMAIL: str = ""
    CUSTOMER_NATIONALITY: str = ""         # e.g. "Israel"
    CUSTOMER_RESIDENCE: str = ""

    # Payment card
    CARD_NUMBER: str = ""
    CARD_EXPIRY: str = ""                  # MMYY
    CARD_CVV: str = ""
    CARD_HOLDER: str = ""
    CARD_COUNTRY: str = ""

    @property
    def has_vision_key(self) -> bool:
        return bool(self.OPENAI_API_KEY)


settings = Settings()  # type: ignore
