from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    MONGODB_URI: str = Field(...)
    MONGODB_DB: str = Field(default="swargandhav")
    AWS_REGION: str = Field(default="ap-south-1")
    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    S3_BUCKET: str = Field(...)
    S3_ENDPOINT_URL: Optional[str] = Field(default=None)
    ASSET_PUBLIC_BASE_URL: Optional[str] = Field(default=None)
    ASSET_FOLDER: str = Field(default="swargandhav_payments")
    MAX_UPLOAD_BYTES: int = Field(default=10 * 1024 * 1024)
    IMAGE_MAX_WIDTH: int = Field(default=800)
    IMAGE_MAX_HEIGHT: int = Field(default=800)
    MAX_IMAGE_PIXELS: int = Field(default=40_000_000)
    REGISTRATION_ID_PREFIX: str = Field(default="SG")
    REGISTRATION_ID_ATTEMPTS: int = Field(default=5)
    CORS_ORIGINS: str = Field(default="*")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    LOG_LEVEL: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
