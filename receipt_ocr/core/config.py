
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("receipt-ocr", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Azure Document Intelligence (cloud OCR)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model: str = Field("prebuilt-receipt", alias="AZ_DI_MODEL")
    cloud_ocr_enabled: bool = Field(True, alias="CLOUD_OCR_ENABLED")
    cloud_ocr_monthly_limit: int = Field(100, alias="CLOUD_OCR_MONTHLY_LIMIT")  # 0 = unlimited
    cloud_ocr_max_bytes: int = Field(20 * 1024 * 1024, alias="CLOUD_OCR_MAX_BYTES")

    # Tesseract (local OCR)
    local_ocr_enabled: bool = Field(True, alias="LOCAL_OCR_ENABLED")
    tesseract_cmd: str | None = Field(default=None, alias="TESSERACT_CMD")
    tesseract_lang: str = Field("eng", alias="TESSERACT_LANG")

    # PDF text layer
    pdf_text_enabled: bool = Field(True, alias="PDF_TEXT_ENABLED")

    # Image preprocessing
    ocr_max_dim: int = Field(1600, alias="OCR_MAX_DIM")

    # Persistence
    data_dir: str = Field("data", alias="DATA_DIR")
    quota_db_path: str | None = Field(default=None, alias="QUOTA_DB_PATH")
    vendor_memory_db_path: str | None = Field(default=None, alias="VENDOR_MEMORY_DB_PATH")

    default_ocr_mode: str = Field("auto", alias="DEFAULT_OCR_MODE")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
