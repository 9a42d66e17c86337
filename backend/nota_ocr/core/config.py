from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATEGORY = "Other"

# Order matters: the first category with a matching keyword wins.
DEFAULT_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Logistik": ["beras", "sembako", "gula", "minyak", "tepung", "telur", "sayur"],
    "Program Kerja": ["sewa", "sound", "tenda", "sertifikat", "banner", "spanduk", "dekorasi"],
    "Operasional": ["atk", "kertas", "tinta", "printer", "pulpen", "staples", "fotocopy", "fotokopi"],
    "Konsumsi": ["nasi", "minum", "konsumsi", "kotak", "snack", "kopi", "teh", "air mineral", "makan"],
    "Transportasi": ["bensin", "pertalite", "gojek", "grab", "jalan tol", "e-toll", "parkir", "ojek", "taxi"],
}

DEFAULT_MONTH_NAMES: dict[str, str] = {
    "jan": "01",
    "januari": "01",
    "feb": "02",
    "februari": "02",
    "mar": "03",
    "maret": "03",
    "apr": "04",
    "april": "04",
    "mei": "05",
    "jun": "06",
    "juni": "06",
    "jul": "07",
    "juli": "07",
    "agu": "08",
    "agt": "08",
    "agustus": "08",
    "sep": "09",
    "sept": "09",
    "september": "09",
    "okt": "10",
    "oktober": "10",
    "nov": "11",
    "november": "11",
    "des": "12",
    "desember": "12",
}


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except json.JSONDecodeError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = Field(default=False)

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["Authorization", "Content-Type", "Accept"])

    # --- Preprocessing ---
    ocr_resize_max_px: int = Field(default=1200, ge=1)
    ocr_binarize_threshold: int = Field(default=180, ge=0, le=255)

    # --- Provider orchestration ---
    ocr_accept_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    ocr_provider_timeout_seconds: float = Field(default=20.0, gt=0.0)
    ocr_provider_order_raw: str = Field(
        default="gemini,tesseract,manual",
        validation_alias=AliasChoices("OCR_PROVIDER_ORDER"),
    )
    ocr_allowed_providers_raw: str = Field(
        default="gemini,tesseract,manual",
        validation_alias=AliasChoices("OCR_ALLOWED_PROVIDERS"),
    )

    # --- Extraction ---
    ocr_merchant_scan_lines: int = Field(default=3, ge=1)
    ocr_review_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    ocr_category_keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_KEYWORDS.items()}
    )
    ocr_month_names: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MONTH_NAMES))

    # --- Provider credentials ---
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_GENAI_API_KEY"),
    )
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    tesseract_lang: str = "ind+eng"
    tesseract_cmd: str = ""

    receipt_max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("ocr_category_keywords")
    @classmethod
    def _lowercase_keywords(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            category: [kw.strip().lower() for kw in keywords if kw.strip()]
            for category, keywords in value.items()
        }

    @field_validator("ocr_month_names")
    @classmethod
    def _check_month_names(cls, value: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for name, month in value.items():
            number = int(month)
            if not 1 <= number <= 12:
                msg = f"Month for {name!r} must be 1-12, got {month!r}"
                raise ValueError(msg)
            normalized[name.strip().lower()] = f"{number:02d}"
        return normalized

    @property
    def ocr_provider_order(self) -> list[str]:
        return [name.lower() for name in _parse_list_value(self.ocr_provider_order_raw)]

    @property
    def ocr_allowed_providers(self) -> list[str]:
        return [name.lower() for name in _parse_list_value(self.ocr_allowed_providers_raw)]


@lru_cache

def get_settings() -> Settings:
    return Settings()
