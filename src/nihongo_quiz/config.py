import os


class Settings:
    PROJECT_NAME: str = "nihongo-quiz"
    DEBUG: bool = os.environ.get("DEBUG", "").lower() in ("1", "true", "yes")
    LOG_DIR: str = os.environ.get("LOG_DIR", "log")
    LOG_FILE: str = "nihongo_quiz.log"
    STORE_DIR: str = os.environ.get("STORE_DIR", "data")
    QUIZ_SIZE: int = 10
    PASS_PERCENTAGE: int = 70
    CHAPTERED_SLUGS: frozenset = frozenset(
        os.environ.get("CHAPTERED_SLUGS", "bunpo").split(",")
    )
    SESSION_COOKIE_NAME: str = "quiz_session_id"
    SESSION_TIMEOUT_MINUTES: int = 120
    ROOT_PATH: str = os.environ.get("ROOT_PATH", "")
    CLOUDINARY_CLOUD_NAME: str = os.environ.get("CLOUDINARY_CLOUD_NAME", "")
    CLOUDINARY_UPLOAD_PRESET: str = os.environ.get("CLOUDINARY_UPLOAD_PRESET", "")
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024
    UPLOAD_TIMEOUT_SECONDS: float = 30.0


settings = Settings()
