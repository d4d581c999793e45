from os import getenv
from pathlib import Path

BUNDLED_AWARDS = str(Path(__file__).resolve().parent.parent / "data" / "awards.json")


class Settings:
    DATABASE_URL = getenv("DATABASE_URL", "sqlite:///./feedback.db")
    SETTINGS_PATH = getenv("SETTINGS_PATH", "./settings.json")  # flag premium & co
    AWARDS_PATH = getenv("AWARDS_PATH", BUNDLED_AWARDS)
    SAVE_DELAY_SECONDS = float(getenv("SAVE_DELAY_SECONDS", "3"))  # fenêtre de debounce
    RECENT_DAYS = int(getenv("RECENT_DAYS", "7"))
    FREE_TAG_LIMIT = int(getenv("FREE_TAG_LIMIT", "0"))  # 0 = pas de limite
    PREMIUM_PRODUCT_ID = getenv("PREMIUM_PRODUCT_ID", "Portfolio.FeedbackApp.premiumUnlock")
    LOG_LEVEL = getenv("LOG_LEVEL", "INFO")

settings = Settings()
